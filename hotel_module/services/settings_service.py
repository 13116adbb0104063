"""
酒店设置服务
管理租户可配置的枚举项（目前为房型列表）
"""
from typing import List, Dict, Any
import logging
from sqlalchemy.orm import Session
from hotel_module.errors import ValidationError
from hotel_module.models.ontology import HotelSetting
from hotel_module.models.schemas import RoomTypeOption

logger = logging.getLogger(__name__)

ROOM_TYPE_SETTING = "roomType"

DEFAULT_ROOM_TYPES: List[Dict[str, Any]] = [
    {"label": "Single", "value": "Single", "is_active": True},
    {"label": "Double", "value": "Double", "is_active": True},
    {"label": "Suite", "value": "Suite", "is_active": True},
    {"label": "Deluxe", "value": "Deluxe", "is_active": True},
]


class SettingsService:
    """设置服务"""

    def __init__(self, db: Session, tenant_id: str):
        self.db = db
        self.tenant_id = tenant_id

    def _get_setting(self, setting_type: str):
        return self.db.query(HotelSetting).filter(
            HotelSetting.tenant_id == self.tenant_id,
            HotelSetting.type == setting_type
        ).first()

    def get_room_types(self) -> List[Dict[str, Any]]:
        """获取房型列表，未配置时返回默认房型"""
        setting = self._get_setting(ROOM_TYPE_SETTING)
        if not setting:
            return [dict(o) for o in DEFAULT_ROOM_TYPES]
        return list(setting.options)

    def update_room_types(self, options: List[RoomTypeOption]) -> List[Dict[str, Any]]:
        """整体替换房型列表"""
        values = [o.value for o in options]
        if len(values) != len(set(values)):
            raise ValidationError("房型取值重复", {"options": "value 不能重复"})

        payload = [o.model_dump() for o in options]
        setting = self._get_setting(ROOM_TYPE_SETTING)
        if setting:
            setting.options = payload
        else:
            setting = HotelSetting(tenant_id=self.tenant_id, type=ROOM_TYPE_SETTING, options=payload)
            self.db.add(setting)
        self.db.commit()
        logger.info(f"Room types updated for tenant {self.tenant_id}: {values}")
        return payload

    def require_active_room_type(self, value: str) -> None:
        """校验房型在启用列表内"""
        active = [o["value"] for o in self.get_room_types() if o.get("is_active", True)]
        if value not in active:
            raise ValidationError(
                f"房型 '{value}' 不存在或已停用",
                {"type": f"可选房型: {', '.join(active)}"}
            )

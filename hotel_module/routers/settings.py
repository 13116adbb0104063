"""
酒店设置路由
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from hotel_module.database import get_db
from hotel_module.models.schemas import RoomTypeSettingsUpdate
from hotel_module.security.auth import CallerIdentity, get_current_user, require_admin
from hotel_module.services.settings_service import SettingsService
from hotel_module.routers.responses import success

router = APIRouter(prefix="/settings", tags=["酒店设置"])


@router.get("/room-types")
def get_room_types(
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """获取房型列表"""
    return success(SettingsService(db, current_user.tenant_id).get_room_types())


@router.put("/room-types")
def update_room_types(
    data: RoomTypeSettingsUpdate,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_admin)
):
    """整体替换房型列表"""
    options = SettingsService(db, current_user.tenant_id).update_room_types(data.options)
    return success(options, "房型已更新")

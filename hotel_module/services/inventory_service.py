"""
库存服务
低库存 (quantity <= min_threshold) 在每次读取时计算，不落库
"""
from typing import List, Optional, Callable
from datetime import datetime
from decimal import Decimal
import logging
from sqlalchemy.orm import Session
from hotel_module.errors import NotFoundError, ValidationError
from hotel_module.models.ontology import InventoryItem, InventoryCategory
from hotel_module.models.schemas import InventoryItemCreate, InventoryItemUpdate
from hotel_module.models.events import EventType, LowStockData
from hotel_module.services.event_bus import event_bus, Event

logger = logging.getLogger(__name__)


class InventoryService:
    """库存服务"""

    def __init__(self, db: Session, tenant_id: str, event_publisher: Callable[[Event], None] = None):
        self.db = db
        self.tenant_id = tenant_id
        self._publish_event = event_publisher or event_bus.publish

    def _query(self):
        return self.db.query(InventoryItem).filter(InventoryItem.tenant_id == self.tenant_id)

    def get_items(self, category: Optional[InventoryCategory] = None,
                  low_stock: Optional[bool] = None) -> List[InventoryItem]:
        """获取库存列表"""
        query = self._query()
        if category is not None:
            query = query.filter(InventoryItem.category == category)
        if low_stock is True:
            query = query.filter(InventoryItem.quantity <= InventoryItem.min_threshold)
        elif low_stock is False:
            query = query.filter(InventoryItem.quantity > InventoryItem.min_threshold)
        return query.order_by(InventoryItem.name, InventoryItem.id).all()

    def list_low_stock(self) -> List[InventoryItem]:
        return self.get_items(low_stock=True)

    def get_item(self, item_id: int) -> Optional[InventoryItem]:
        return self._query().filter(InventoryItem.id == item_id).first()

    def require_item(self, item_id: int) -> InventoryItem:
        item = self.get_item(item_id)
        if not item:
            raise NotFoundError("库存物品不存在", {"item_id": item_id})
        return item

    def _notify_low_stock(self, item: InventoryItem, was_low: bool) -> None:
        """物品刚进入低库存时发布一次事件"""
        if was_low or not item.is_low_stock:
            return
        logger.warning(f"Inventory item {item.name} low: {item.quantity} <= {item.min_threshold}")
        self._publish_event(Event(
            event_type=EventType.INVENTORY_LOW_STOCK,
            timestamp=datetime.now(),
            data=LowStockData(
                tenant_id=self.tenant_id,
                item_id=item.id,
                name=item.name,
                quantity=str(item.quantity),
                min_threshold=str(item.min_threshold)
            ).to_dict(),
            source="inventory_service"
        ))

    def create_item(self, data: InventoryItemCreate) -> InventoryItem:
        item = InventoryItem(
            tenant_id=self.tenant_id,
            last_restocked_at=datetime.now(),
            **data.model_dump()
        )
        self.db.add(item)
        self.db.commit()
        self.db.refresh(item)
        logger.info(f"Inventory item {item.name} created for tenant {self.tenant_id}")
        self._notify_low_stock(item, was_low=False)
        return item

    def update_item(self, item_id: int, data: InventoryItemUpdate) -> InventoryItem:
        """更新物品；数量变化时记录补货时间"""
        item = self.require_item(item_id)
        was_low = item.is_low_stock
        update_data = data.model_dump(exclude_unset=True)

        new_quantity = update_data.get("quantity")
        if new_quantity is not None and Decimal(new_quantity) != item.quantity:
            item.last_restocked_at = datetime.now()

        for key, value in update_data.items():
            setattr(item, key, value)

        self.db.commit()
        self.db.refresh(item)
        self._notify_low_stock(item, was_low)
        return item

    def adjust_quantity(self, item_id: int, delta: Decimal) -> InventoryItem:
        """按增量调整库存，结果不能为负"""
        item = self.require_item(item_id)
        was_low = item.is_low_stock
        new_quantity = Decimal(item.quantity) + Decimal(delta)
        if new_quantity < 0:
            raise ValidationError(
                f"库存不足：当前 {item.quantity}，调整 {delta}",
                {"delta": "调整后数量不能为负"}
            )

        item.quantity = new_quantity
        item.last_restocked_at = datetime.now()
        self.db.commit()
        self.db.refresh(item)
        logger.info(f"Inventory item {item.name} adjusted by {delta} -> {item.quantity}")
        self._notify_low_stock(item, was_low)
        return item

    def delete_item(self, item_id: int) -> None:
        item = self.require_item(item_id)
        self.db.delete(item)
        self.db.commit()
        logger.info(f"Inventory item {item_id} deleted for tenant {self.tenant_id}")

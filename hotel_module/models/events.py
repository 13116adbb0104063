"""
领域事件定义 (Domain Events)
事件在事务提交后发布，只用于通知观察者，不承担必需的业务副作用
"""
from enum import Enum
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Optional, Dict, Any, List


class EventType(str, Enum):
    """事件类型枚举"""
    # 房间相关
    ROOM_STATUS_CHANGED = "room.status_changed"

    # 预订相关
    BOOKING_GROUP_CREATED = "booking.group_created"
    BOOKING_CHECKED_IN = "booking.checked_in"
    BOOKING_CHECKED_OUT = "booking.checked_out"
    BOOKING_CANCELLED = "booking.cancelled"
    BOOKING_NO_SHOW = "booking.no_show"

    # 清洁任务相关
    TASK_CREATED = "task.created"
    TASK_STATUS_CHANGED = "task.status_changed"

    # 库存相关
    INVENTORY_LOW_STOCK = "inventory.low_stock"


@dataclass
class BaseEventData:
    """事件数据基类"""
    tenant_id: str = ""
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        result = asdict(self)
        for key, value in result.items():
            if isinstance(value, datetime):
                result[key] = value.isoformat()
        return result


@dataclass
class RoomStatusChangedData(BaseEventData):
    """房间状态变更事件数据"""
    room_id: int = 0
    room_number: str = ""
    old_status: str = ""
    new_status: str = ""
    reason: str = ""


@dataclass
class BookingGroupCreatedData(BaseEventData):
    """组预订创建事件数据"""
    check_in_number: str = ""
    customer_id: int = 0
    booking_ids: List[int] = field(default_factory=list)
    room_ids: List[int] = field(default_factory=list)
    check_in_date: str = ""
    check_out_date: str = ""
    total_amount: str = "0"


@dataclass
class BookingCheckedInData(BaseEventData):
    """组入住事件数据"""
    check_in_number: str = ""
    booking_ids: List[int] = field(default_factory=list)
    room_ids: List[int] = field(default_factory=list)


@dataclass
class BookingCheckedOutData(BaseEventData):
    """组退房事件数据，task_ids 为同一事务内生成的清洁任务"""
    check_in_number: str = ""
    booking_ids: List[int] = field(default_factory=list)
    room_ids: List[int] = field(default_factory=list)
    task_ids: List[int] = field(default_factory=list)


@dataclass
class BookingClosedData(BaseEventData):
    """单行取消 / 未到店事件数据"""
    booking_id: int = 0
    check_in_number: str = ""
    room_id: Optional[int] = None
    status: str = ""
    reason: str = ""


@dataclass
class TaskCreatedData(BaseEventData):
    """任务创建事件数据"""
    task_id: int = 0
    task_type: str = ""
    room_id: int = 0
    room_number: str = ""
    priority: str = ""
    check_in_number: Optional[str] = None
    trigger: str = "manual"  # manual / checkout


@dataclass
class TaskStatusChangedData(BaseEventData):
    """任务状态变更事件数据"""
    task_id: int = 0
    room_id: int = 0
    old_status: str = ""
    new_status: str = ""
    room_released: bool = False


@dataclass
class LowStockData(BaseEventData):
    """库存低于阈值事件数据"""
    item_id: int = 0
    name: str = ""
    quantity: str = "0"
    min_threshold: str = "0"

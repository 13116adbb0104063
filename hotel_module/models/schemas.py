"""
Pydantic 模式定义
用于 API 请求/响应验证
"""
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from hotel_module.models.ontology import (
    RoomStatus, BookingStatus, PaymentStatus, ServiceType, CheckInType,
    TaskType, TaskPriority, TaskStatus, InventoryCategory
)


def _reject_null(value):
    """部分更新时字段可以省略，但不能显式传 null"""
    if value is None:
        raise ValueError("不能为 null")
    return value


# ============== 房型配置 Schemas ==============

class RoomTypeOption(BaseModel):
    label: str = Field(..., min_length=1)
    value: str = Field(..., min_length=1)
    is_active: bool = True


class RoomTypeSettingsUpdate(BaseModel):
    options: List[RoomTypeOption] = Field(..., min_length=1)


# ============== 房间 Schemas ==============

class RoomBase(BaseModel):
    number: str = Field(..., min_length=1, max_length=20)
    type: str = Field(..., min_length=1, max_length=50)
    price_per_night: Decimal = Field(..., ge=0)
    floor: int
    amenities: List[str] = Field(default_factory=list)
    description: Optional[str] = Field(None, max_length=500)

    @field_validator("number")
    @classmethod
    def strip_number(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("房间号不能为空")
        return v


class RoomCreate(RoomBase):
    pass


class RoomUpdate(BaseModel):
    number: Optional[str] = Field(None, min_length=1, max_length=20)
    type: Optional[str] = Field(None, min_length=1, max_length=50)
    price_per_night: Optional[Decimal] = Field(None, ge=0)
    floor: Optional[int] = None
    amenities: Optional[List[str]] = None
    description: Optional[str] = Field(None, max_length=500)

    reject_null = field_validator("number", "type", "price_per_night", "floor", "amenities")(_reject_null)


class RoomResponse(RoomBase):
    id: int
    status: RoomStatus
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class RoomStatusUpdate(BaseModel):
    status: RoomStatus


# ============== 客人 Schemas ==============

class CustomerBase(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: Optional[str] = Field(None, max_length=120)
    phone: str = Field(..., min_length=1, max_length=20)
    id_proof_type: Optional[str] = Field(None, max_length=50)
    id_proof_number: Optional[str] = Field(None, max_length=50)
    gender: Optional[str] = Field(None, max_length=10)
    address: Optional[str] = Field(None, max_length=500)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    pin_code: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("email")
    @classmethod
    def check_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("邮箱格式不正确")
        return v


class CustomerCreate(CustomerBase):
    pass


class CustomerUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[str] = Field(None, max_length=120)
    phone: Optional[str] = Field(None, min_length=1, max_length=20)
    id_proof_type: Optional[str] = Field(None, max_length=50)
    id_proof_number: Optional[str] = Field(None, max_length=50)
    gender: Optional[str] = Field(None, max_length=10)
    address: Optional[str] = Field(None, max_length=500)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    pin_code: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = Field(None, max_length=1000)

    reject_null = field_validator("first_name", "last_name", "phone")(_reject_null)


class CustomerResponse(CustomerBase):
    id: int
    full_name: str
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ============== 代理 Schemas ==============

class AgentBase(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    agent_code: str = Field(..., min_length=1, max_length=50)
    email: Optional[str] = Field(None, max_length=120)
    phone: Optional[str] = Field(None, max_length=20)
    share_percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    is_active: bool = True
    notes: Optional[str] = None


class AgentCreate(AgentBase):
    pass


class AgentUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[str] = Field(None, max_length=120)
    phone: Optional[str] = Field(None, max_length=20)
    share_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    is_active: Optional[bool] = None
    notes: Optional[str] = None

    reject_null = field_validator("first_name", "last_name", "share_percentage", "is_active")(_reject_null)


class AgentResponse(AgentBase):
    id: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ============== 预订 Schemas ==============

class BookingCreate(BaseModel):
    """创建组预订：每个 room_id 生成一行，共享一个入住单号"""
    customer_id: Optional[int] = None
    customer_data: Optional[CustomerCreate] = None
    room_ids: List[int] = Field(..., min_length=1)
    check_in_date: date
    number_of_days: int = Field(..., ge=1)
    service_type: ServiceType = ServiceType.FULL_DAY
    check_in_type: CheckInType = CheckInType.WALK_IN
    male_count: int = Field(default=0, ge=0)
    female_count: int = Field(default=0, ge=0)
    child_count: int = Field(default=0, ge=0)
    agent_id: Optional[int] = None
    purpose_of_visit: Optional[str] = Field(None, max_length=500)
    advance_amount: Decimal = Field(default=Decimal("0"), ge=0)
    notes: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def check_customer(self):
        if self.customer_id is None and self.customer_data is None:
            raise ValueError("customer_id 与 customer_data 必须提供其一")
        return self

    @property
    def party_size(self) -> int:
        return self.male_count + self.female_count + self.child_count


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class PaymentUpdate(BaseModel):
    paid_amount: Decimal = Field(..., ge=0)


class BookingResponse(BaseModel):
    id: int
    check_in_number: str
    customer_id: int
    room_id: Optional[int] = None
    room_number: Optional[str] = None
    agent_id: Optional[int] = None
    check_in_date: date
    number_of_days: int
    check_out_date: date
    room_rent: Decimal
    total_amount: Decimal
    advance_amount: Decimal
    paid_amount: Decimal
    status: BookingStatus
    payment_status: PaymentStatus
    service_type: ServiceType
    check_in_type: CheckInType
    male_count: int
    female_count: int
    child_count: int
    party_size: int
    purpose_of_visit: Optional[str] = None
    notes: Optional[str] = None
    cancel_reason: Optional[str] = None
    checked_in_at: Optional[datetime] = None
    checked_out_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class BookingGroupResponse(BaseModel):
    """组预订视图，金额合计为读取时汇总"""
    check_in_number: str
    customer_id: int
    customer_name: Optional[str] = None
    agent_id: Optional[int] = None
    room_count: int
    total_amount: Decimal
    advance_amount: Decimal
    paid_amount: Decimal
    agent_commission: Decimal
    services_amount: Decimal = Decimal("0")
    grand_total: Decimal = Decimal("0")
    rows: List[BookingResponse]


# ============== 附加服务 Schemas ==============

class ExtraServiceBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    rate: Decimal = Field(..., ge=0)
    gst_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    is_active: bool = True


class ExtraServiceCreate(ExtraServiceBase):
    pass


class ExtraServiceUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    rate: Optional[Decimal] = Field(None, ge=0)
    gst_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    is_active: Optional[bool] = None

    reject_null = field_validator("name", "rate", "gst_rate", "is_active")(_reject_null)


class ExtraServiceResponse(ExtraServiceBase):
    id: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class BookingExtraCreate(BaseModel):
    service_id: int
    quantity: int = Field(default=1, ge=1)
    notes: Optional[str] = Field(None, max_length=500)


class BookingExtraUpdate(BaseModel):
    quantity: Optional[int] = Field(None, ge=1)
    notes: Optional[str] = Field(None, max_length=500)

    reject_null = field_validator("quantity")(_reject_null)


class BookingExtraResponse(BaseModel):
    id: int
    booking_id: int
    service_id: int
    service_name: str
    quantity: int
    price: Decimal
    total_amount: Decimal
    notes: Optional[str] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ============== 清洁任务 Schemas ==============

class TaskCreate(BaseModel):
    room_id: int
    task_type: TaskType = TaskType.ROUTINE
    priority: TaskPriority = TaskPriority.MEDIUM
    staff_name: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    due_date: Optional[datetime] = None


class TaskStatusUpdate(BaseModel):
    status: TaskStatus
    notes: Optional[str] = None


class TaskAssign(BaseModel):
    staff_name: str = Field(..., min_length=1, max_length=100)


class TaskResponse(BaseModel):
    id: int
    room_id: int
    room_number: Optional[str] = None
    task_type: TaskType
    priority: TaskPriority
    status: TaskStatus
    staff_name: Optional[str] = None
    notes: Optional[str] = None
    check_in_number: Optional[str] = None
    due_date: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ============== 库存 Schemas ==============

class InventoryItemBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    category: InventoryCategory = InventoryCategory.OTHER
    quantity: Decimal = Field(default=Decimal("0"), ge=0)
    unit: str = Field(default="pcs", max_length=20)
    min_threshold: Decimal = Field(default=Decimal("5"), ge=0)
    remarks: Optional[str] = None


class InventoryItemCreate(InventoryItemBase):
    pass


class InventoryItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    category: Optional[InventoryCategory] = None
    quantity: Optional[Decimal] = Field(None, ge=0)
    unit: Optional[str] = Field(None, max_length=20)
    min_threshold: Optional[Decimal] = Field(None, ge=0)
    remarks: Optional[str] = None

    reject_null = field_validator("name", "category", "quantity", "unit", "min_threshold")(_reject_null)


class InventoryAdjust(BaseModel):
    delta: Decimal


class InventoryItemResponse(InventoryItemBase):
    id: int
    is_low_stock: bool
    last_restocked_at: Optional[datetime] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ============== 报表 Schemas ==============

class ReportSummary(BaseModel):
    occupancy_rate: float
    occupied_rooms: int
    total_rooms: int
    total_revenue_today: float
    total_rooms_sold_today: int
    adr: float
    revpar: float


class TrendPoint(BaseModel):
    date: date
    revenue: float
    occupancy: float

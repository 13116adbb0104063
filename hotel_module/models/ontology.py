"""
本体对象定义
酒店模块的持久化实体：房间、客人、渠道代理、预订、清洁任务、库存
所有实体带 tenant_id，查询一律按租户过滤
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, DateTime, Date, ForeignKey, Text,
    Enum as SQLEnum, Boolean, Numeric, JSON, UniqueConstraint
)
from sqlalchemy.orm import relationship
from hotel_module.database import Base


# ============== 枚举定义 ==============

class RoomStatus(str, Enum):
    """房间状态枚举"""
    AVAILABLE = "Available"        # 可售
    OCCUPIED = "Occupied"          # 入住中
    DIRTY = "Dirty"                # 待清洁
    MAINTENANCE = "Maintenance"    # 维修中
    CLEANING = "Cleaning"          # 清洁中


class BookingStatus(str, Enum):
    """预订状态枚举"""
    CONFIRMED = "Confirmed"        # 已确认
    CHECKED_IN = "CheckedIn"       # 已入住
    CHECKED_OUT = "CheckedOut"     # 已退房
    CANCELLED = "Cancelled"        # 已取消
    NO_SHOW = "NoShow"             # 未到店


# 占用房间的预订状态
ACTIVE_BOOKING_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN)


class PaymentStatus(str, Enum):
    """付款状态，与预订状态相互独立"""
    PENDING = "Pending"
    PARTIAL = "Partial"
    PAID = "Paid"
    REFUNDED = "Refunded"


class ServiceType(str, Enum):
    """计费方式"""
    FULL_DAY = "24 Hours"
    HALF_DAY = "12 Hours"
    NOON = "12 PM"


class CheckInType(str, Enum):
    """入住渠道"""
    WALK_IN = "Walk In"
    ONLINE = "Online Booking"


class TaskType(str, Enum):
    """清洁任务类型"""
    CHECKOUT_CLEAN = "Checkout Clean"
    ROUTINE = "Routine"
    DEEP_CLEAN = "Deep Clean"
    MAINTENANCE = "Maintenance"
    TURN_DOWN = "Turn Down"


class TaskPriority(str, Enum):
    """任务优先级"""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    EMERGENCY = "Emergency"


class TaskStatus(str, Enum):
    """任务状态"""
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    DELAYED = "Delayed"


class InventoryCategory(str, Enum):
    """库存分类"""
    LINEN = "Linen"
    TOILETRIES = "Toiletries"
    MINI_BAR = "Mini Bar"
    CLEANING_SUPPLIES = "Cleaning Supplies"
    OTHER = "Other"


# ============== 本体对象定义 ==============

class HotelSetting(Base):
    """
    租户级配置项
    type=roomType 时 options 为可选房型列表 [{label, value, is_active}]
    """
    __tablename__ = "hotel_settings"
    __table_args__ = (UniqueConstraint("tenant_id", "type", name="uq_setting_tenant_type"),)

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    options = Column(JSON, nullable=False, default=list)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class Room(Base):
    """
    房间对象
    status 只由最近一次终结事件决定：入住、退房、清洁完成或人工调整
    """
    __tablename__ = "rooms"
    __table_args__ = (UniqueConstraint("tenant_id", "number", name="uq_room_tenant_number"),)

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    number = Column(String(20), nullable=False)                 # 房间号
    floor = Column(Integer, nullable=False)                     # 楼层
    type = Column(String(50), nullable=False)                   # 房型 (取自租户配置)
    price_per_night = Column(Numeric(10, 2), nullable=False)    # 每晚价格
    status = Column(SQLEnum(RoomStatus), default=RoomStatus.AVAILABLE, nullable=False)
    amenities = Column(JSON, default=list)
    description = Column(Text)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # 链接
    bookings = relationship("Booking", back_populates="room")
    tasks = relationship("HousekeepingTask", back_populates="room", cascade="all, delete-orphan")


class Customer(Base):
    """客人对象，预订引用但状态机不修改"""
    __tablename__ = "customers"
    __table_args__ = (UniqueConstraint("tenant_id", "email", name="uq_customer_tenant_email"),)

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(120))
    phone = Column(String(20), nullable=False)
    id_proof_type = Column(String(50))                  # 证件类型
    id_proof_number = Column(String(50))                # 证件号码
    gender = Column(String(10))
    address = Column(String(500))
    city = Column(String(100))
    state = Column(String(100))
    pin_code = Column(String(20))
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    bookings = relationship("Booking", back_populates="customer")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Agent(Base):
    """渠道代理，按 share_percentage 分成"""
    __tablename__ = "agents"
    __table_args__ = (UniqueConstraint("tenant_id", "agent_code", name="uq_agent_tenant_code"),)

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    agent_code = Column(String(50), nullable=False)
    email = Column(String(120))
    phone = Column(String(20))
    share_percentage = Column(Numeric(5, 2), default=0)
    is_active = Column(Boolean, default=True)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    bookings = relationship("Booking", back_populates="agent")


class Booking(Base):
    """
    预订对象 - 每个房间一行
    同一组预订共享 check_in_number；total_amount 存单房份额，
    组合计在读取时汇总
    """
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    check_in_number = Column(String(32), nullable=False, index=True)   # 入住单号 (组内共享)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="SET NULL"), nullable=True, index=True)
    room_number = Column(String(20))                                   # 房间号快照
    agent_id = Column(Integer, ForeignKey("agents.id"), nullable=True)
    check_in_date = Column(Date, nullable=False)
    number_of_days = Column(Integer, nullable=False)
    check_out_date = Column(Date, nullable=False)
    room_rent = Column(Numeric(10, 2), nullable=False)                 # 房价 × 天数
    total_amount = Column(Numeric(10, 2), nullable=False)              # 单房应收
    advance_amount = Column(Numeric(10, 2), default=0)                 # 预付分摊
    paid_amount = Column(Numeric(10, 2), default=0)
    status = Column(SQLEnum(BookingStatus), default=BookingStatus.CONFIRMED, nullable=False)
    payment_status = Column(SQLEnum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    service_type = Column(SQLEnum(ServiceType), default=ServiceType.FULL_DAY)
    check_in_type = Column(SQLEnum(CheckInType), default=CheckInType.WALK_IN)
    male_count = Column(Integer, default=0)
    female_count = Column(Integer, default=0)
    child_count = Column(Integer, default=0)
    purpose_of_visit = Column(String(500))
    notes = Column(Text)
    cancel_reason = Column(Text)
    checked_in_at = Column(DateTime)
    checked_out_at = Column(DateTime)
    cancelled_at = Column(DateTime)
    created_by = Column(String(64))
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # 链接
    customer = relationship("Customer", back_populates="bookings")
    room = relationship("Room", back_populates="bookings")
    agent = relationship("Agent", back_populates="bookings")

    @property
    def party_size(self) -> int:
        return (self.male_count or 0) + (self.female_count or 0) + (self.child_count or 0)

    @property
    def balance(self) -> Decimal:
        return (self.total_amount or Decimal("0")) - (self.paid_amount or Decimal("0"))


class BookingCounter(Base):
    """入住单号序列，按租户 + 日期递增"""
    __tablename__ = "booking_counters"
    __table_args__ = (UniqueConstraint("tenant_id", "key", name="uq_counter_tenant_key"),)

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(64), nullable=False)
    key = Column(String(50), nullable=False)
    seq = Column(Integer, nullable=False, default=0)


class HousekeepingTask(Base):
    """
    清洁任务对象
    退房时每个房间自动生成一条；完成脏房任务时房间恢复可售
    """
    __tablename__ = "housekeeping_tasks"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False)
    task_type = Column(SQLEnum(TaskType), default=TaskType.ROUTINE, nullable=False)
    priority = Column(SQLEnum(TaskPriority), default=TaskPriority.MEDIUM, nullable=False)
    status = Column(SQLEnum(TaskStatus), default=TaskStatus.PENDING, nullable=False)
    staff_name = Column(String(100))                    # 负责人，仅记录不排班
    notes = Column(Text)
    check_in_number = Column(String(32), index=True)    # 来源入住单号
    due_date = Column(DateTime)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    room = relationship("Room", back_populates="tasks")

    @property
    def room_number(self):
        return self.room.number if self.room else None


class InventoryItem(Base):
    """库存物品，低库存为读取时计算的派生属性"""
    __tablename__ = "inventory_items"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    category = Column(SQLEnum(InventoryCategory), default=InventoryCategory.OTHER, nullable=False)
    quantity = Column(Numeric(10, 2), default=0, nullable=False)
    unit = Column(String(20), default="pcs")
    min_threshold = Column(Numeric(10, 2), default=5, nullable=False)
    last_restocked_at = Column(DateTime)
    remarks = Column(Text)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    @property
    def is_low_stock(self) -> bool:
        return (self.quantity or 0) <= (self.min_threshold or 0)


class ExtraService(Base):
    """附加服务目录（洗衣、接机、早餐等），按租户维护"""
    __tablename__ = "extra_services"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    rate = Column(Numeric(10, 2), nullable=False)
    gst_rate = Column(Numeric(5, 2), default=0, nullable=False)       # 仅记录，不参与计费
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class BookingExtra(Base):
    """
    预订行上的附加服务消费
    price 为添加时的服务单价快照，后续改价不影响已有记录
    """
    __tablename__ = "booking_extras"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("extra_services.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(10, 2), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.now)

    booking = relationship("Booking")
    service = relationship("ExtraService")

    @property
    def service_name(self) -> str:
        return self.service.name if self.service else ""

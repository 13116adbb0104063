"""
预订服务 - 预订引擎
组预订的每个房间一行，共享一个入住单号。入住、退房按入住单号对整组生效，
且在涉及房间的锁内一次提交，失败时不留下部分状态。

业务联动规则：
1. 创建：校验所有房间可预订，不改变房态
2. 入住：Confirmed 行 -> CheckedIn，房间 -> Occupied
3. 退房：CheckedIn 行 -> CheckedOut，房间 -> Dirty，并为每个房间生成一条清洁任务
4. 取消 / 未到店：仅单行，仅限 Confirmed，不改变房态
"""
from typing import List, Optional, Callable, Dict, Any
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
import logging
from sqlalchemy import update, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from hotel_module.errors import (
    ValidationError, NotFoundError, RoomUnavailableError,
    InvalidTransitionError, InvalidStateError
)
from hotel_module.models.ontology import (
    Booking, BookingCounter, BookingStatus, PaymentStatus, Room, RoomStatus
)
from hotel_module.models.schemas import BookingCreate
from hotel_module.models.events import (
    EventType, BookingGroupCreatedData, BookingCheckedInData,
    BookingCheckedOutData, BookingClosedData
)
from hotel_module.services.event_bus import event_bus, Event
from hotel_module.services.locks import room_locks, RoomLockRegistry
from hotel_module.services.room_service import RoomService
from hotel_module.services.task_service import TaskService
from hotel_module.services.customer_service import CustomerService
from hotel_module.services.agent_service import AgentService
from hotel_module.services.catalog_service import ServiceCatalogService

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# 预订行状态机；Cancelled / NoShow / CheckedOut 为终态
BOOKING_TRANSITIONS = {
    BookingStatus.CONFIRMED: {BookingStatus.CHECKED_IN, BookingStatus.CANCELLED, BookingStatus.NO_SHOW},
    BookingStatus.CHECKED_IN: {BookingStatus.CHECKED_OUT},
}


def apportion(amount: Decimal, weights: List[Decimal]) -> List[Decimal]:
    """按权重分摊金额，舍入差额计入最后一项，保证合计不变"""
    total_weight = sum(weights, Decimal("0"))
    if not weights:
        return []
    if amount == 0 or total_weight == 0:
        return [Decimal("0.00") for _ in weights]

    shares = [
        (amount * w / total_weight).quantize(CENT, rounding=ROUND_HALF_UP)
        for w in weights[:-1]
    ]
    shares.append(amount - sum(shares, Decimal("0")))
    return shares


def derive_payment_status(paid: Decimal, total: Decimal) -> PaymentStatus:
    if paid <= 0:
        return PaymentStatus.PENDING
    if paid < total:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PAID


class BookingService:
    """预订服务"""

    def __init__(self, db: Session, tenant_id: str, event_publisher: Callable[[Event], None] = None,
                 lock_registry: Optional[RoomLockRegistry] = None):
        self.db = db
        self.tenant_id = tenant_id
        # 支持依赖注入事件发布器，便于测试
        self._publish_event = event_publisher or event_bus.publish
        self._locks = lock_registry or room_locks
        self.room_service = RoomService(db, tenant_id, self._publish_event, self._locks)
        self.task_service = TaskService(db, tenant_id, self._publish_event, self._locks)

    # ============== 查询 ==============

    def _query(self):
        return self.db.query(Booking).filter(Booking.tenant_id == self.tenant_id)

    def get_bookings(self, status: Optional[BookingStatus] = None,
                     check_in_number: Optional[str] = None,
                     customer_id: Optional[int] = None,
                     on_date: Optional[date] = None) -> List[Booking]:
        """获取预订列表；on_date 筛选在店区间 [入住, 离店) 覆盖该日的行"""
        query = self._query()
        if status is not None:
            query = query.filter(Booking.status == status)
        if check_in_number:
            query = query.filter(Booking.check_in_number == check_in_number)
        if customer_id is not None:
            query = query.filter(Booking.customer_id == customer_id)
        if on_date is not None:
            query = query.filter(
                Booking.check_in_date <= on_date,
                Booking.check_out_date > on_date
            )
        return query.order_by(desc(Booking.created_at), desc(Booking.id)).all()

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        return self._query().filter(Booking.id == booking_id).first()

    def require_booking(self, booking_id: int) -> Booking:
        booking = self.get_booking(booking_id)
        if not booking:
            raise NotFoundError("预订不存在", {"booking_id": booking_id})
        return booking

    def get_group_rows(self, check_in_number: str) -> List[Booking]:
        return self._query().filter(
            Booking.check_in_number == check_in_number
        ).order_by(Booking.id).all()

    def _require_group(self, check_in_number: str) -> List[Booking]:
        rows = self.get_group_rows(check_in_number)
        if not rows:
            raise NotFoundError("入住单不存在", {"check_in_number": check_in_number})
        return rows

    def get_group(self, check_in_number: str) -> Dict[str, Any]:
        """
        组预订视图

        金额合计在读取时汇总，已取消的行不计入；
        代理佣金 = 房费合计 × 分成比例，附加服务单独列出
        """
        rows = self._require_group(check_in_number)
        billable = [r for r in rows if r.status != BookingStatus.CANCELLED]
        total = sum((r.total_amount for r in billable), Decimal("0"))
        advance = sum((r.advance_amount or Decimal("0") for r in billable), Decimal("0"))
        paid = sum((r.paid_amount or Decimal("0") for r in billable), Decimal("0"))
        services = ServiceCatalogService(self.db, self.tenant_id).extras_total(r.id for r in billable)

        head = rows[0]
        commission = Decimal("0.00")
        if head.agent is not None:
            commission = (total * (head.agent.share_percentage or 0) / 100).quantize(CENT, rounding=ROUND_HALF_UP)

        return {
            "check_in_number": check_in_number,
            "customer_id": head.customer_id,
            "customer_name": head.customer.full_name if head.customer else None,
            "agent_id": head.agent_id,
            "room_count": len(rows),
            "total_amount": total,
            "advance_amount": advance,
            "paid_amount": paid,
            "agent_commission": commission,
            "services_amount": services,
            "grand_total": total + services,
            "rows": rows,
        }

    # ============== 入住单号 ==============

    def _bump_counter(self, key: str) -> int:
        """计数器 +1，返回受影响行数"""
        result = self.db.execute(
            update(BookingCounter)
            .where(BookingCounter.tenant_id == self.tenant_id, BookingCounter.key == key)
            .values(seq=BookingCounter.seq + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def _next_check_in_number(self, on: date) -> str:
        """
        CHK-YYYYMMDD-NNNN，按租户 + 日期递增，在调用方事务内生效

        当天首单插入计数行；不同房间的预订不共享房间锁，
        另一请求可能抢先插入，此时回滚保存点后改为递增
        """
        key = on.strftime("%Y%m%d")
        if self._bump_counter(key) == 0:
            try:
                with self.db.begin_nested():
                    self.db.add(BookingCounter(tenant_id=self.tenant_id, key=key, seq=1))
                return f"CHK-{key}-0001"
            except IntegrityError:
                logger.info(f"Check-in counter {key} created concurrently for tenant {self.tenant_id}, retrying")
                self._bump_counter(key)
        seq = self.db.query(BookingCounter.seq).filter(
            BookingCounter.tenant_id == self.tenant_id,
            BookingCounter.key == key
        ).scalar()
        return f"CHK-{key}-{seq:04d}"

    # ============== 创建 ==============

    def create_group_booking(self, data: BookingCreate, created_by: Optional[str] = None) -> List[Booking]:
        """
        创建组预订（全部成功或全部失败）

        Raises:
            ValidationError: 房间重复、预付超出合计、代理已停用
            NotFoundError: 房间、客人或代理不存在
            RoomUnavailableError: 任一房间维修中或与有效预订日期重叠
        """
        room_ids = list(data.room_ids)
        if len(set(room_ids)) != len(room_ids):
            raise ValidationError("同一预订中房间不能重复", {"room_ids": "房间重复"})

        check_in = data.check_in_date
        check_out = check_in + timedelta(days=data.number_of_days)

        if data.customer_id is not None:
            CustomerService(self.db, self.tenant_id).require_customer(data.customer_id)
        if data.agent_id is not None:
            agent = AgentService(self.db, self.tenant_id).require_agent(data.agent_id)
            if not agent.is_active:
                raise ValidationError("代理已停用", {"agent_id": f"代理 {agent.agent_code} 已停用"})

        with self._locks.hold(self.tenant_id, room_ids):
            # 锁内重新读取，避免使用锁外的过期快照
            self.db.expire_all()
            try:
                rooms = self.room_service.get_rooms_by_ids(room_ids)
                by_id = {room.id: room for room in rooms}
                missing = [rid for rid in room_ids if rid not in by_id]
                if missing:
                    raise NotFoundError("房间不存在", {"room_ids": missing})
                ordered = [by_id[rid] for rid in room_ids]

                unavailable = {room.id for room in ordered if room.status == RoomStatus.MAINTENANCE}
                for conflict in self.room_service.find_conflicts(room_ids, check_in, check_out):
                    unavailable.add(conflict.room_id)
                if unavailable:
                    numbers = [by_id[rid].number for rid in room_ids if rid in unavailable]
                    logger.warning(
                        f"Group booking rejected for tenant {self.tenant_id}: rooms {numbers} "
                        f"unavailable for [{check_in}, {check_out})"
                    )
                    raise RoomUnavailableError(
                        f"房间 {', '.join(numbers)} 在所选日期不可预订",
                        {
                            "room_ids": [rid for rid in room_ids if rid in unavailable],
                            "room_numbers": numbers,
                            "check_in_date": check_in.isoformat(),
                            "check_out_date": check_out.isoformat(),
                        }
                    )

                rents = [
                    (Decimal(room.price_per_night) * data.number_of_days).quantize(CENT, rounding=ROUND_HALF_UP)
                    for room in ordered
                ]
                group_total = sum(rents, Decimal("0"))
                if data.advance_amount > group_total:
                    raise ValidationError(
                        "预付金额不能超过订单总额",
                        {"advance_amount": f"不能超过 {group_total}"}
                    )

                customer_id = data.customer_id
                if customer_id is None:
                    customer_id = CustomerService(self.db, self.tenant_id).build_customer(data.customer_data).id

                check_in_number = self._next_check_in_number(date.today())
                advances = apportion(data.advance_amount, rents)

                rows = []
                for room, rent, advance in zip(ordered, rents, advances):
                    booking = Booking(
                        tenant_id=self.tenant_id,
                        check_in_number=check_in_number,
                        customer_id=customer_id,
                        room_id=room.id,
                        room_number=room.number,
                        agent_id=data.agent_id,
                        check_in_date=check_in,
                        number_of_days=data.number_of_days,
                        check_out_date=check_out,
                        room_rent=rent,
                        total_amount=rent,
                        advance_amount=advance,
                        paid_amount=advance,
                        status=BookingStatus.CONFIRMED,
                        payment_status=derive_payment_status(advance, rent),
                        service_type=data.service_type,
                        check_in_type=data.check_in_type,
                        male_count=data.male_count,
                        female_count=data.female_count,
                        child_count=data.child_count,
                        purpose_of_visit=data.purpose_of_visit,
                        notes=data.notes,
                        created_by=created_by
                    )
                    self.db.add(booking)
                    rows.append(booking)

                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        for row in rows:
            self.db.refresh(row)

        logger.info(
            f"Group booking {check_in_number} created for tenant {self.tenant_id}: "
            f"{len(rows)} rooms [{check_in}, {check_out}) total {group_total}"
        )
        self._publish_event(Event(
            event_type=EventType.BOOKING_GROUP_CREATED,
            timestamp=datetime.now(),
            data=BookingGroupCreatedData(
                tenant_id=self.tenant_id,
                check_in_number=check_in_number,
                customer_id=customer_id,
                booking_ids=[r.id for r in rows],
                room_ids=[r.room_id for r in rows],
                check_in_date=check_in.isoformat(),
                check_out_date=check_out.isoformat(),
                total_amount=str(group_total)
            ).to_dict(),
            source="booking_service"
        ))
        return rows

    # ============== 组操作 ==============

    def _check_transition(self, booking: Booking, target: BookingStatus) -> None:
        if target not in BOOKING_TRANSITIONS.get(booking.status, set()):
            logger.warning(
                f"Booking {booking.id} rejected transition {booking.status.value} -> {target.value}"
            )
            raise InvalidTransitionError(
                f"预订状态不能从 {booking.status.value} 变更为 {target.value}",
                from_state=booking.status, to_state=target,
                details={"booking_id": booking.id}
            )

    @staticmethod
    def _distinct_rooms(rows: List[Booking]) -> List[Room]:
        rooms = []
        seen = set()
        for row in rows:
            if row.room is not None and row.room.id not in seen:
                seen.add(row.room.id)
                rooms.append(row.room)
        return rooms

    def check_in(self, check_in_number: str) -> List[Booking]:
        """
        整组入住

        已全部入住的组重复调用视为成功；组内没有 Confirmed 行则报 InvalidStateError。
        所有待入住房间必须当前为 Available，否则整组失败
        """
        rows = self._require_group(check_in_number)
        room_ids = [r.room_id for r in rows if r.status == BookingStatus.CONFIRMED]

        events = []
        with self._locks.hold(self.tenant_id, room_ids):
            self.db.expire_all()
            try:
                rows = self.get_group_rows(check_in_number)
                confirmed = [r for r in rows if r.status == BookingStatus.CONFIRMED]
                if not confirmed:
                    if any(r.status == BookingStatus.CHECKED_IN for r in rows):
                        logger.info(f"Group {check_in_number} already checked in")
                        return rows
                    raise InvalidStateError(
                        f"入住单 {check_in_number} 没有待入住的预订",
                        to_state=BookingStatus.CHECKED_IN,
                        details={"check_in_number": check_in_number}
                    )

                rooms = self._distinct_rooms(confirmed)
                blocked = [room for room in rooms if room.status != RoomStatus.AVAILABLE]
                orphaned = [r.id for r in confirmed if r.room is None]
                if blocked or orphaned:
                    logger.warning(
                        f"Check-in {check_in_number} rejected: rooms "
                        f"{[f'{room.number}({room.status.value})' for room in blocked]} not available"
                    )
                    raise RoomUnavailableError(
                        f"房间 {', '.join(room.number for room in blocked) or '已删除'} 当前不可入住",
                        {
                            "check_in_number": check_in_number,
                            "room_ids": [room.id for room in blocked],
                            "room_numbers": [room.number for room in blocked],
                            "room_statuses": [room.status.value for room in blocked],
                            "booking_ids_without_room": orphaned,
                        }
                    )

                now = datetime.now()
                for row in confirmed:
                    self._check_transition(row, BookingStatus.CHECKED_IN)
                    row.status = BookingStatus.CHECKED_IN
                    row.checked_in_at = now
                for room in rooms:
                    event = self.room_service.mark(room, RoomStatus.OCCUPIED, reason=f"check-in {check_in_number}")
                    if event:
                        events.append(event)

                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        logger.info(f"Group {check_in_number} checked in: {len(confirmed)} rows, rooms {[r.number for r in rooms]}")
        events.append(Event(
            event_type=EventType.BOOKING_CHECKED_IN,
            timestamp=datetime.now(),
            data=BookingCheckedInData(
                tenant_id=self.tenant_id,
                check_in_number=check_in_number,
                booking_ids=[r.id for r in confirmed],
                room_ids=[room.id for room in rooms]
            ).to_dict(),
            source="booking_service"
        ))
        for event in events:
            self._publish_event(event)
        return self.get_group_rows(check_in_number)

    def check_out(self, check_in_number: str) -> List[Booking]:
        """
        整组退房

        CheckedIn 行 -> CheckedOut，房间 -> Dirty，每个房间生成一条清洁任务，
        全部在同一事务内提交。已全部退房的组重复调用视为成功
        """
        rows = self._require_group(check_in_number)
        room_ids = [r.room_id for r in rows if r.status == BookingStatus.CHECKED_IN]

        events = []
        with self._locks.hold(self.tenant_id, room_ids):
            self.db.expire_all()
            try:
                rows = self.get_group_rows(check_in_number)
                checked_in = [r for r in rows if r.status == BookingStatus.CHECKED_IN]
                if not checked_in:
                    if any(r.status == BookingStatus.CHECKED_OUT for r in rows):
                        logger.info(f"Group {check_in_number} already checked out")
                        return rows
                    raise InvalidStateError(
                        f"入住单 {check_in_number} 没有在住的预订",
                        to_state=BookingStatus.CHECKED_OUT,
                        details={"check_in_number": check_in_number}
                    )

                now = datetime.now()
                for row in checked_in:
                    self._check_transition(row, BookingStatus.CHECKED_OUT)
                    row.status = BookingStatus.CHECKED_OUT
                    row.checked_out_at = now

                rooms = self._distinct_rooms(checked_in)
                for room in rooms:
                    event = self.room_service.mark(room, RoomStatus.DIRTY, reason=f"check-out {check_in_number}")
                    if event:
                        events.append(event)
                tasks = self.task_service.build_checkout_tasks(check_in_number, rooms)

                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        logger.info(
            f"Group {check_in_number} checked out: rooms {[r.number for r in rooms]}, "
            f"{len(tasks)} housekeeping tasks created"
        )
        events.extend(self.task_service.checkout_task_events(tasks))
        events.append(Event(
            event_type=EventType.BOOKING_CHECKED_OUT,
            timestamp=datetime.now(),
            data=BookingCheckedOutData(
                tenant_id=self.tenant_id,
                check_in_number=check_in_number,
                booking_ids=[r.id for r in checked_in],
                room_ids=[room.id for room in rooms],
                task_ids=[t.id for t in tasks]
            ).to_dict(),
            source="booking_service"
        ))
        for event in events:
            self._publish_event(event)
        return self.get_group_rows(check_in_number)

    def check_in_by_booking(self, booking_id: int) -> List[Booking]:
        """按任一行 id 对整组入住"""
        return self.check_in(self.require_booking(booking_id).check_in_number)

    def check_out_by_booking(self, booking_id: int) -> List[Booking]:
        """按任一行 id 对整组退房"""
        return self.check_out(self.require_booking(booking_id).check_in_number)

    # ============== 单行操作 ==============

    def _close(self, booking_id: int, target: BookingStatus, event_type: EventType,
               reason: Optional[str] = None) -> Booking:
        booking = self.require_booking(booking_id)
        with self._locks.hold(self.tenant_id, [booking.room_id]):
            self.db.expire_all()
            try:
                booking = self.require_booking(booking_id)
                self._check_transition(booking, target)
                booking.status = target
                if target == BookingStatus.CANCELLED:
                    booking.cancelled_at = datetime.now()
                if reason:
                    booking.cancel_reason = reason
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(booking)
        logger.info(f"Booking {booking.id} ({booking.check_in_number}) -> {target.value}")
        self._publish_event(Event(
            event_type=event_type,
            timestamp=datetime.now(),
            data=BookingClosedData(
                tenant_id=self.tenant_id,
                booking_id=booking.id,
                check_in_number=booking.check_in_number,
                room_id=booking.room_id,
                status=target.value,
                reason=reason or ""
            ).to_dict(),
            source="booking_service"
        ))
        return booking

    def cancel(self, booking_id: int, reason: Optional[str] = None) -> Booking:
        """取消单行预订，仅限 Confirmed"""
        return self._close(booking_id, BookingStatus.CANCELLED, EventType.BOOKING_CANCELLED, reason)

    def mark_no_show(self, booking_id: int) -> Booking:
        """标记单行未到店，仅限 Confirmed"""
        return self._close(booking_id, BookingStatus.NO_SHOW, EventType.BOOKING_NO_SHOW)

    # ============== 付款 ==============

    def record_payment(self, booking_id: int, paid_amount: Decimal) -> Booking:
        """
        记录已付金额并推导付款状态

        付款状态独立于预订状态，不影响入住/退房
        """
        if paid_amount < 0:
            raise ValidationError("已付金额不能为负", {"paid_amount": "必须 >= 0"})
        booking = self.require_booking(booking_id)
        booking.paid_amount = paid_amount
        booking.payment_status = derive_payment_status(Decimal(paid_amount), booking.total_amount)
        self.db.commit()
        self.db.refresh(booking)
        logger.info(f"Booking {booking.id} paid {paid_amount} -> {booking.payment_status.value}")
        return booking

    def refund(self, booking_id: int) -> Booking:
        booking = self.require_booking(booking_id)
        booking.payment_status = PaymentStatus.REFUNDED
        self.db.commit()
        self.db.refresh(booking)
        logger.info(f"Booking {booking.id} marked refunded")
        return booking

"""
房间服务 - 房间注册表
管理 Room 对象及其状态；set_status 是不做业务校验的原始操作，
业务规则由预订引擎和清洁任务服务负责
"""
from typing import List, Optional, Callable, Iterable
from datetime import date, datetime
import logging
from sqlalchemy import select
from sqlalchemy.orm import Session
from hotel_module.errors import NotFoundError, ConflictError
from hotel_module.models.ontology import Room, RoomStatus, Booking, ACTIVE_BOOKING_STATUSES
from hotel_module.models.schemas import RoomCreate, RoomUpdate
from hotel_module.models.events import EventType, RoomStatusChangedData
from hotel_module.services.event_bus import event_bus, Event
from hotel_module.services.locks import room_locks, RoomLockRegistry
from hotel_module.services.settings_service import SettingsService

logger = logging.getLogger(__name__)


class RoomService:
    """房间服务"""

    def __init__(self, db: Session, tenant_id: str, event_publisher: Callable[[Event], None] = None,
                 lock_registry: Optional[RoomLockRegistry] = None):
        self.db = db
        self.tenant_id = tenant_id
        # 支持依赖注入事件发布器，便于测试
        self._publish_event = event_publisher or event_bus.publish
        self._locks = lock_registry or room_locks

    # ============== 查询 ==============

    def _query(self):
        return self.db.query(Room).filter(Room.tenant_id == self.tenant_id)

    def get_rooms(self, status: Optional[RoomStatus] = None, floor: Optional[int] = None,
                  room_type: Optional[str] = None) -> List[Room]:
        """获取房间列表"""
        query = self._query()
        if status is not None:
            query = query.filter(Room.status == status)
        if floor is not None:
            query = query.filter(Room.floor == floor)
        if room_type:
            query = query.filter(Room.type == room_type)
        return query.order_by(Room.number).all()

    def get_room(self, room_id: int) -> Optional[Room]:
        """获取单个房间"""
        return self._query().filter(Room.id == room_id).first()

    def require_room(self, room_id: int) -> Room:
        room = self.get_room(room_id)
        if not room:
            raise NotFoundError("房间不存在", {"room_id": room_id})
        return room

    def get_room_by_number(self, number: str) -> Optional[Room]:
        """根据房间号获取房间"""
        return self._query().filter(Room.number == number).first()

    def get_rooms_by_ids(self, room_ids: Iterable[int]) -> List[Room]:
        ids = list(room_ids)
        if not ids:
            return []
        return self._query().filter(Room.id.in_(ids)).order_by(Room.id).all()

    # ============== 维护 ==============

    def create_room(self, data: RoomCreate) -> Room:
        """创建房间，同一租户下房间号唯一"""
        if self.get_room_by_number(data.number):
            raise ConflictError(f"房间号 '{data.number}' 已存在")

        SettingsService(self.db, self.tenant_id).require_active_room_type(data.type)

        room = Room(tenant_id=self.tenant_id, status=RoomStatus.AVAILABLE, **data.model_dump())
        self.db.add(room)
        self.db.commit()
        self.db.refresh(room)
        logger.info(f"Room {room.number} created for tenant {self.tenant_id}")
        return room

    def update_room(self, room_id: int, data: RoomUpdate) -> Room:
        """更新房间基础信息（状态通过 set_status 修改）"""
        room = self.require_room(room_id)
        update_data = data.model_dump(exclude_unset=True)

        if update_data.get('number') is not None:
            update_data['number'] = update_data['number'].strip()
            existing = self.get_room_by_number(update_data['number'])
            if existing and existing.id != room_id:
                raise ConflictError(f"房间号 '{update_data['number']}' 已存在")

        if update_data.get('type') is not None:
            SettingsService(self.db, self.tenant_id).require_active_room_type(update_data['type'])

        for key, value in update_data.items():
            setattr(room, key, value)

        self.db.commit()
        self.db.refresh(room)
        return room

    def delete_room(self, room_id: int) -> None:
        """删除房间，存在有效预订时拒绝；与预订共用房间锁"""
        self.require_room(room_id)

        with self._locks.hold(self.tenant_id, [room_id]):
            self.db.expire_all()
            try:
                room = self.require_room(room_id)
                active = self.db.query(Booking).filter(
                    Booking.tenant_id == self.tenant_id,
                    Booking.room_id == room_id,
                    Booking.status.in_(ACTIVE_BOOKING_STATUSES)
                ).count()
                if active > 0:
                    raise ConflictError(f"房间 {room.number} 存在 {active} 条有效预订，无法删除")

                # 历史预订保留 room_number 快照，room_id 置空
                self.db.delete(room)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        logger.info(f"Room {room_id} deleted for tenant {self.tenant_id}")

    # ============== 状态 ==============

    def mark(self, room: Room, status: RoomStatus, reason: str = "") -> Optional[Event]:
        """
        在当前事务中修改房间状态，不提交

        Returns:
            状态确有变化时返回待发布的事件，由调用方在提交后发布
        """
        old_status = room.status
        room.status = status
        if old_status == status:
            return None
        return Event(
            event_type=EventType.ROOM_STATUS_CHANGED,
            timestamp=datetime.now(),
            data=RoomStatusChangedData(
                tenant_id=self.tenant_id,
                room_id=room.id,
                room_number=room.number,
                old_status=old_status.value if old_status else "",
                new_status=status.value,
                reason=reason
            ).to_dict(),
            source="room_service"
        )

    def set_status(self, room_id: int, status: RoomStatus, reason: str = "manual") -> Room:
        """无条件设置房间状态（人工调整入口）"""
        room = self.require_room(room_id)
        event = self.mark(room, RoomStatus(status), reason)
        self.db.commit()
        self.db.refresh(room)

        if event:
            logger.info(
                f"Room {room.number} status {event.data['old_status']} -> {event.data['new_status']} ({reason})"
            )
            self._publish_event(event)
        return room

    # ============== 可用性 ==============

    def find_conflicts(self, room_ids: Iterable[int], check_in: date, check_out: date,
                       exclude_booking_ids: Optional[Iterable[int]] = None) -> List[Booking]:
        """
        查找与 [check_in, check_out) 重叠的有效预订

        区间左闭右开：同一天退房和入住不冲突
        """
        ids = list(room_ids)
        if not ids:
            return []
        query = self.db.query(Booking).filter(
            Booking.tenant_id == self.tenant_id,
            Booking.room_id.in_(ids),
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.check_in_date < check_out,
            Booking.check_out_date > check_in
        )
        if exclude_booking_ids:
            query = query.filter(~Booking.id.in_(list(exclude_booking_ids)))
        return query.all()

    def is_available_for_range(self, room_id: int, check_in: date, check_out: date) -> bool:
        """房间在 [check_in, check_out) 内是否没有有效预订"""
        self.require_room(room_id)
        conflicts = self.find_conflicts([room_id], check_in, check_out)
        logger.debug(f"Availability check room={room_id} [{check_in}, {check_out}): {len(conflicts)} conflicts")
        return not conflicts

    def get_available_rooms(self, check_in: date, check_out: date,
                            room_type: Optional[str] = None) -> List[Room]:
        """指定日期范围内可预订的房间（排除维修中）"""
        busy = select(Booking.room_id).where(
            Booking.tenant_id == self.tenant_id,
            Booking.room_id.isnot(None),
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.check_in_date < check_out,
            Booking.check_out_date > check_in
        )
        query = self._query().filter(
            Room.status != RoomStatus.MAINTENANCE,
            ~Room.id.in_(busy)
        )
        if room_type:
            query = query.filter(Room.type == room_type)
        return query.order_by(Room.number).all()

    def get_room_status_summary(self) -> dict:
        """获取房态统计"""
        summary = {'total': 0}
        for status in RoomStatus:
            summary[status.value] = 0
        for room in self._query().all():
            summary['total'] += 1
            summary[room.status.value] += 1
        return summary

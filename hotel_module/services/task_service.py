"""
清洁任务服务 - 本体操作层
退房任务由预订引擎在退房事务内生成；完成脏房的任务是房间恢复可售的唯一业务路径
"""
from typing import List, Optional, Callable, Iterable
from datetime import datetime
import logging
from sqlalchemy import desc
from sqlalchemy.orm import Session
from hotel_module.config import settings
from hotel_module.errors import InvalidTransitionError, NotFoundError
from hotel_module.models.ontology import (
    HousekeepingTask, Room, RoomStatus, TaskType, TaskPriority, TaskStatus
)
from hotel_module.models.schemas import TaskCreate
from hotel_module.models.events import EventType, TaskCreatedData, TaskStatusChangedData
from hotel_module.services.event_bus import event_bus, Event
from hotel_module.services.locks import room_locks, RoomLockRegistry
from hotel_module.services.room_service import RoomService

logger = logging.getLogger(__name__)

# 允许的状态转换；Completed 为终态
TASK_TRANSITIONS = {
    TaskStatus.PENDING: {TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED, TaskStatus.DELAYED},
    TaskStatus.IN_PROGRESS: {TaskStatus.COMPLETED, TaskStatus.DELAYED},
    TaskStatus.DELAYED: {TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED},
    TaskStatus.COMPLETED: set(),
}

OVERDUE_STATUSES = (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)


class TaskService:
    """清洁任务服务"""

    def __init__(self, db: Session, tenant_id: str, event_publisher: Callable[[Event], None] = None,
                 lock_registry: Optional[RoomLockRegistry] = None):
        self.db = db
        self.tenant_id = tenant_id
        # 支持依赖注入事件发布器，便于测试
        self._publish_event = event_publisher or event_bus.publish
        self._locks = lock_registry or room_locks
        self.room_service = RoomService(db, tenant_id, self._publish_event, self._locks)

    # ============== 查询 ==============

    def _query(self):
        return self.db.query(HousekeepingTask).filter(HousekeepingTask.tenant_id == self.tenant_id)

    def get_tasks(self, status: Optional[TaskStatus] = None, room_id: Optional[int] = None,
                  staff_name: Optional[str] = None,
                  task_type: Optional[TaskType] = None) -> List[HousekeepingTask]:
        """获取任务列表"""
        query = self._query()
        if status is not None:
            query = query.filter(HousekeepingTask.status == status)
        if room_id is not None:
            query = query.filter(HousekeepingTask.room_id == room_id)
        if staff_name:
            query = query.filter(HousekeepingTask.staff_name == staff_name)
        if task_type is not None:
            query = query.filter(HousekeepingTask.task_type == task_type)
        return query.order_by(desc(HousekeepingTask.created_at), desc(HousekeepingTask.id)).all()

    def list_pending(self) -> List[HousekeepingTask]:
        """未完成的任务（含延误）"""
        return self._query().filter(
            HousekeepingTask.status != TaskStatus.COMPLETED
        ).order_by(HousekeepingTask.created_at, HousekeepingTask.id).all()

    def get_task(self, task_id: int) -> Optional[HousekeepingTask]:
        return self._query().filter(HousekeepingTask.id == task_id).first()

    def require_task(self, task_id: int) -> HousekeepingTask:
        task = self.get_task(task_id)
        if not task:
            raise NotFoundError("任务不存在", {"task_id": task_id})
        return task

    def get_task_summary(self) -> dict:
        """按状态统计任务数量"""
        summary = {status.value: 0 for status in TaskStatus}
        for task in self._query().all():
            summary[task.status.value] += 1
        summary["total"] = sum(summary.values())
        return summary

    # ============== 创建 ==============

    def _created_event(self, task: HousekeepingTask, trigger: str) -> Event:
        return Event(
            event_type=EventType.TASK_CREATED,
            timestamp=datetime.now(),
            data=TaskCreatedData(
                tenant_id=self.tenant_id,
                task_id=task.id,
                task_type=task.task_type.value,
                room_id=task.room_id,
                room_number=task.room_number or "",
                priority=task.priority.value,
                check_in_number=task.check_in_number,
                trigger=trigger
            ).to_dict(),
            source="task_service"
        )

    def create_task(self, data: TaskCreate) -> HousekeepingTask:
        """人工创建任务"""
        self.room_service.require_room(data.room_id)

        task = HousekeepingTask(
            tenant_id=self.tenant_id,
            room_id=data.room_id,
            task_type=data.task_type,
            priority=data.priority,
            status=TaskStatus.PENDING,
            staff_name=data.staff_name,
            notes=data.notes,
            due_date=data.due_date
        )
        self.db.add(task)
        self.db.commit()
        self.db.refresh(task)

        self._publish_event(self._created_event(task, "manual"))
        return task

    def build_checkout_tasks(self, check_in_number: str, rooms: Iterable[Room]) -> List[HousekeepingTask]:
        """
        为退房的房间各生成一条清洁任务，不提交

        由退房事务调用，任务与预订状态变更一起提交
        """
        task_type = TaskType(settings.CHECKOUT_TASK_TYPE)
        priority = TaskPriority(settings.CHECKOUT_TASK_PRIORITY)
        tasks = []
        seen = set()
        for room in rooms:
            if room.id in seen:
                continue
            seen.add(room.id)
            task = HousekeepingTask(
                tenant_id=self.tenant_id,
                room=room,
                task_type=task_type,
                priority=priority,
                status=TaskStatus.PENDING,
                check_in_number=check_in_number,
                notes=f"退房自动生成 - 入住单号: {check_in_number}"
            )
            self.db.add(task)
            tasks.append(task)
        self.db.flush()
        return tasks

    def checkout_task_events(self, tasks: Iterable[HousekeepingTask]) -> List[Event]:
        return [self._created_event(task, "checkout") for task in tasks]

    # ============== 状态 ==============

    def update_status(self, task_id: int, status: TaskStatus, notes: Optional[str] = None) -> HousekeepingTask:
        """
        更新任务状态

        进入 Completed 时，若房间当前为 Dirty 则恢复为 Available；
        其他状态的房间不受影响
        """
        status = TaskStatus(status)
        task = self.require_task(task_id)
        if task.status == status:
            return task

        events = []
        with self._locks.hold(self.tenant_id, [task.room_id]):
            self.db.expire_all()
            try:
                task = self.require_task(task_id)
                old_status = task.status
                if status not in TASK_TRANSITIONS[old_status]:
                    logger.warning(f"Task {task_id} rejected transition {old_status.value} -> {status.value}")
                    raise InvalidTransitionError(
                        f"任务不能从 {old_status.value} 变更为 {status.value}",
                        from_state=old_status, to_state=status
                    )

                now = datetime.now()
                task.status = status
                if status == TaskStatus.IN_PROGRESS and task.started_at is None:
                    task.started_at = now
                if notes:
                    task.notes = f"{task.notes}\n{notes}" if task.notes else notes

                room_released = False
                if status == TaskStatus.COMPLETED:
                    task.completed_at = now
                    room = task.room
                    if room is not None and room.status == RoomStatus.DIRTY:
                        event = self.room_service.mark(room, RoomStatus.AVAILABLE, reason=f"task {task.id} completed")
                        if event:
                            events.append(event)
                        room_released = True

                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(task)
        logger.info(
            f"Task {task.id} {old_status.value} -> {status.value}"
            + (f", room {task.room_number} released" if room_released else "")
        )

        events.append(Event(
            event_type=EventType.TASK_STATUS_CHANGED,
            timestamp=datetime.now(),
            data=TaskStatusChangedData(
                tenant_id=self.tenant_id,
                task_id=task.id,
                room_id=task.room_id,
                old_status=old_status.value,
                new_status=status.value,
                room_released=room_released
            ).to_dict(),
            source="task_service"
        ))
        for event in events:
            self._publish_event(event)
        return task

    def assign(self, task_id: int, staff_name: str) -> HousekeepingTask:
        """记录负责人（不做排班）"""
        task = self.require_task(task_id)
        if task.status == TaskStatus.COMPLETED:
            raise InvalidTransitionError("已完成的任务不能重新分配", from_state=task.status)
        task.staff_name = staff_name
        self.db.commit()
        self.db.refresh(task)
        return task

    def delete_task(self, task_id: int) -> None:
        task = self.require_task(task_id)
        if task.status == TaskStatus.COMPLETED:
            raise InvalidTransitionError("已完成的任务不能删除", from_state=task.status)
        self.db.delete(task)
        self.db.commit()
        logger.info(f"Task {task_id} deleted for tenant {self.tenant_id}")

    def mark_overdue(self, now: Optional[datetime] = None) -> List[HousekeepingTask]:
        """将已过截止时间且未完成的任务标记为 Delayed（按需调用）"""
        now = now or datetime.now()
        overdue = self._query().filter(
            HousekeepingTask.status.in_(OVERDUE_STATUSES),
            HousekeepingTask.due_date.isnot(None),
            HousekeepingTask.due_date < now
        ).all()
        if not overdue:
            return []

        old_statuses = {task.id: task.status for task in overdue}
        for task in overdue:
            task.status = TaskStatus.DELAYED
        self.db.commit()
        logger.info(f"{len(overdue)} tasks marked delayed for tenant {self.tenant_id}")

        for task in overdue:
            self._publish_event(Event(
                event_type=EventType.TASK_STATUS_CHANGED,
                timestamp=datetime.now(),
                data=TaskStatusChangedData(
                    tenant_id=self.tenant_id,
                    task_id=task.id,
                    room_id=task.room_id,
                    old_status=old_statuses[task.id].value,
                    new_status=TaskStatus.DELAYED.value
                ).to_dict(),
                source="task_service"
            ))
        return overdue

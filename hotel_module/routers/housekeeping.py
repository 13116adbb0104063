"""
清洁任务路由
"""
from typing import Optional
from datetime import datetime
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from hotel_module.database import get_db
from hotel_module.models.ontology import TaskStatus, TaskType
from hotel_module.models.schemas import TaskCreate, TaskStatusUpdate, TaskAssign, TaskResponse
from hotel_module.security.auth import CallerIdentity, get_current_user
from hotel_module.services.task_service import TaskService
from hotel_module.routers.responses import success

router = APIRouter(prefix="/housekeeping", tags=["清洁任务"])


def _service(db: Session, user: CallerIdentity) -> TaskService:
    return TaskService(db, user.tenant_id)


@router.get("")
def list_tasks(
    status: Optional[TaskStatus] = None,
    room_id: Optional[int] = None,
    staff_name: Optional[str] = None,
    task_type: Optional[TaskType] = None,
    pending: bool = False,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """获取任务列表；pending=true 时只返回未完成任务"""
    service = _service(db, current_user)
    tasks = service.list_pending() if pending else service.get_tasks(status, room_id, staff_name, task_type)
    return success([TaskResponse.model_validate(t) for t in tasks])


@router.get("/summary")
def get_task_summary(
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """按状态统计任务"""
    return success(_service(db, current_user).get_task_summary())


@router.post("/mark-overdue")
def mark_overdue(
    now: Optional[datetime] = None,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """将超时未完成的任务标记为延误"""
    tasks = _service(db, current_user).mark_overdue(now)
    return success([TaskResponse.model_validate(t) for t in tasks], f"{len(tasks)} 条任务已标记延误")


@router.get("/{task_id}")
def get_task(
    task_id: int,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    task = _service(db, current_user).require_task(task_id)
    return success(TaskResponse.model_validate(task))


@router.post("", status_code=201)
def create_task(
    data: TaskCreate,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """人工创建任务"""
    task = _service(db, current_user).create_task(data)
    return success(TaskResponse.model_validate(task), "任务创建成功")


@router.patch("/{task_id}/status")
def update_task_status(
    task_id: int,
    data: TaskStatusUpdate,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """更新任务状态；完成脏房任务时房间恢复可售"""
    task = _service(db, current_user).update_status(task_id, data.status, data.notes)
    return success(TaskResponse.model_validate(task), "任务状态已更新")


@router.patch("/{task_id}/assign")
def assign_task(
    task_id: int,
    data: TaskAssign,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """记录负责人"""
    task = _service(db, current_user).assign(task_id, data.staff_name)
    return success(TaskResponse.model_validate(task), "分配成功")


@router.delete("/{task_id}")
def delete_task(
    task_id: int,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """删除任务（已完成的任务不能删除）"""
    _service(db, current_user).delete_task(task_id)
    return success(None, f"任务 {task_id} 已删除")

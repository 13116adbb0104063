"""
房间管理路由
"""
from typing import Optional
from datetime import date, timedelta
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from hotel_module.database import get_db
from hotel_module.errors import ValidationError
from hotel_module.models.ontology import RoomStatus
from hotel_module.models.schemas import RoomCreate, RoomUpdate, RoomResponse, RoomStatusUpdate
from hotel_module.security.auth import CallerIdentity, get_current_user, require_admin, require_front_desk
from hotel_module.services.room_service import RoomService
from hotel_module.routers.responses import success

router = APIRouter(prefix="/rooms", tags=["房间管理"])


def _service(db: Session, user: CallerIdentity) -> RoomService:
    return RoomService(db, user.tenant_id)


@router.get("")
def list_rooms(
    status: Optional[RoomStatus] = None,
    floor: Optional[int] = None,
    room_type: Optional[str] = Query(None, alias="type"),
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """获取房间列表"""
    rooms = _service(db, current_user).get_rooms(status, floor, room_type)
    return success([RoomResponse.model_validate(r) for r in rooms])


@router.get("/status-summary")
def get_status_summary(
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """房态统计"""
    return success(_service(db, current_user).get_room_status_summary())


@router.get("/available")
def list_available_rooms(
    check_in_date: date,
    number_of_days: int = Query(1, ge=1),
    room_type: Optional[str] = Query(None, alias="type"),
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """指定日期范围内可预订的房间"""
    check_out_date = check_in_date + timedelta(days=number_of_days)
    rooms = _service(db, current_user).get_available_rooms(check_in_date, check_out_date, room_type)
    return success([RoomResponse.model_validate(r) for r in rooms])


@router.get("/{room_id}")
def get_room(
    room_id: int,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """获取房间详情"""
    room = _service(db, current_user).require_room(room_id)
    return success(RoomResponse.model_validate(room))


@router.get("/{room_id}/availability")
def check_availability(
    room_id: int,
    check_in_date: date,
    check_out_date: date,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """房间在 [入住, 离店) 内是否可预订"""
    if check_out_date <= check_in_date:
        raise ValidationError("离店日期必须晚于入住日期", {"check_out_date": "必须晚于 check_in_date"})
    available = _service(db, current_user).is_available_for_range(room_id, check_in_date, check_out_date)
    return success({"room_id": room_id, "available": available})


@router.post("", status_code=201)
def create_room(
    data: RoomCreate,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_admin)
):
    """创建房间"""
    room = _service(db, current_user).create_room(data)
    return success(RoomResponse.model_validate(room), "房间创建成功")


@router.patch("/{room_id}")
def update_room(
    room_id: int,
    data: RoomUpdate,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_admin)
):
    """更新房间信息"""
    room = _service(db, current_user).update_room(room_id, data)
    return success(RoomResponse.model_validate(room), "房间更新成功")


@router.patch("/{room_id}/status")
def update_room_status(
    room_id: int,
    data: RoomStatusUpdate,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_front_desk)
):
    """人工调整房态"""
    room = _service(db, current_user).set_status(room_id, data.status, reason=f"manual by {current_user.user_id}")
    return success(RoomResponse.model_validate(room), "房态已更新")


@router.delete("/{room_id}")
def delete_room(
    room_id: int,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_admin)
):
    """删除房间"""
    _service(db, current_user).delete_room(room_id)
    return success(None, f"房间 {room_id} 已删除")

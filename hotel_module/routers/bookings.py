"""
预订管理路由
入住 / 退房接收任一行 id，对共享同一入住单号的整组生效
"""
from typing import Optional
from datetime import date
from fastapi import APIRouter, Depends, Body
from sqlalchemy.orm import Session
from hotel_module.database import get_db
from hotel_module.models.ontology import BookingStatus
from hotel_module.models.schemas import (
    BookingCreate, BookingCancel, PaymentUpdate, BookingResponse, BookingGroupResponse,
    BookingExtraCreate, BookingExtraUpdate, BookingExtraResponse
)
from hotel_module.security.auth import CallerIdentity, get_current_user
from hotel_module.services.booking_service import BookingService
from hotel_module.services.catalog_service import ServiceCatalogService
from hotel_module.routers.responses import success

router = APIRouter(prefix="/bookings", tags=["预订管理"])


def _service(db: Session, user: CallerIdentity) -> BookingService:
    return BookingService(db, user.tenant_id)


def _rows(rows):
    return [BookingResponse.model_validate(r) for r in rows]


@router.get("")
def list_bookings(
    status: Optional[BookingStatus] = None,
    check_in_number: Optional[str] = None,
    customer_id: Optional[int] = None,
    on_date: Optional[date] = None,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """获取预订列表"""
    bookings = _service(db, current_user).get_bookings(status, check_in_number, customer_id, on_date)
    return success(_rows(bookings))


@router.get("/groups/{check_in_number}")
def get_group(
    check_in_number: str,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """获取组预订（含金额合计和代理佣金）"""
    group = _service(db, current_user).get_group(check_in_number)
    group["rows"] = _rows(group["rows"])
    return success(BookingGroupResponse(**group))


@router.get("/{booking_id}")
def get_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """获取预订详情"""
    booking = _service(db, current_user).require_booking(booking_id)
    return success(BookingResponse.model_validate(booking))


@router.post("", status_code=201)
def create_booking(
    data: BookingCreate,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """创建组预订，每个房间一行，共享入住单号"""
    rows = _service(db, current_user).create_group_booking(data, created_by=current_user.user_id)
    return success(
        {"check_in_number": rows[0].check_in_number, "rows": _rows(rows)},
        f"预订成功，入住单号 {rows[0].check_in_number}"
    )


@router.post("/{booking_id}/check-in")
def check_in(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """整组入住"""
    rows = _service(db, current_user).check_in_by_booking(booking_id)
    return success({"check_in_number": rows[0].check_in_number, "rows": _rows(rows)}, "入住成功")


@router.post("/{booking_id}/check-out")
def check_out(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """整组退房，为每个房间生成清洁任务"""
    rows = _service(db, current_user).check_out_by_booking(booking_id)
    return success({"check_in_number": rows[0].check_in_number, "rows": _rows(rows)}, "退房成功")


@router.post("/{booking_id}/cancel")
def cancel_booking(
    booking_id: int,
    data: Optional[BookingCancel] = Body(None),
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """取消单行预订"""
    reason = data.reason if data else None
    booking = _service(db, current_user).cancel(booking_id, reason)
    return success(BookingResponse.model_validate(booking), "预订已取消")


@router.post("/{booking_id}/no-show")
def mark_no_show(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """标记未到店"""
    booking = _service(db, current_user).mark_no_show(booking_id)
    return success(BookingResponse.model_validate(booking), "已标记未到店")


@router.post("/{booking_id}/payment")
def record_payment(
    booking_id: int,
    data: PaymentUpdate,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """记录已付金额"""
    booking = _service(db, current_user).record_payment(booking_id, data.paid_amount)
    return success(BookingResponse.model_validate(booking), "付款已记录")


@router.post("/{booking_id}/refund")
def refund(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """标记已退款"""
    booking = _service(db, current_user).refund(booking_id)
    return success(BookingResponse.model_validate(booking), "已标记退款")


# ============== 附加服务 ==============

@router.get("/{booking_id}/services")
def list_booking_services(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """获取预订行的附加服务"""
    extras = ServiceCatalogService(db, current_user.tenant_id).list_extras(booking_id)
    return success([BookingExtraResponse.model_validate(e) for e in extras])


@router.post("/{booking_id}/services", status_code=201)
def add_booking_service(
    booking_id: int,
    data: BookingExtraCreate,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """添加附加服务，按当前服务单价计价"""
    extra = ServiceCatalogService(db, current_user.tenant_id).add_extra(booking_id, data)
    return success(BookingExtraResponse.model_validate(extra), "附加服务已添加")


@router.patch("/{booking_id}/services/{extra_id}")
def update_booking_service(
    booking_id: int,
    extra_id: int,
    data: BookingExtraUpdate,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    extra = ServiceCatalogService(db, current_user.tenant_id).update_extra(booking_id, extra_id, data)
    return success(BookingExtraResponse.model_validate(extra), "附加服务已更新")


@router.delete("/{booking_id}/services/{extra_id}")
def remove_booking_service(
    booking_id: int,
    extra_id: int,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    ServiceCatalogService(db, current_user.tenant_id).remove_extra(booking_id, extra_id)
    return success(None, "附加服务已移除")

"""
附加服务 - 服务目录与预订行消费
消费记录添加时按服务单价快照计价，total_amount = price × quantity；
附加服务金额与房费分开汇总，不影响付款状态和代理佣金
"""
from typing import List, Optional, Iterable
from decimal import Decimal
import logging
from sqlalchemy import func
from sqlalchemy.orm import Session
from hotel_module.errors import NotFoundError, ValidationError, ConflictError, InvalidStateError
from hotel_module.models.ontology import Booking, BookingStatus, ExtraService, BookingExtra
from hotel_module.models.schemas import (
    ExtraServiceCreate, ExtraServiceUpdate, BookingExtraCreate, BookingExtraUpdate
)

logger = logging.getLogger(__name__)

# 已关闭的预订行不再记账
CLOSED_BOOKING_STATUSES = (BookingStatus.CANCELLED, BookingStatus.NO_SHOW)


class ServiceCatalogService:
    """附加服务目录与预订消费"""

    def __init__(self, db: Session, tenant_id: str):
        self.db = db
        self.tenant_id = tenant_id

    # ============== 服务目录 ==============

    def _services(self):
        return self.db.query(ExtraService).filter(ExtraService.tenant_id == self.tenant_id)

    def get_services(self, active_only: bool = False) -> List[ExtraService]:
        query = self._services()
        if active_only:
            query = query.filter(ExtraService.is_active.is_(True))
        return query.order_by(ExtraService.name, ExtraService.id).all()

    def require_service(self, service_id: int) -> ExtraService:
        service = self._services().filter(ExtraService.id == service_id).first()
        if not service:
            raise NotFoundError("服务不存在", {"service_id": service_id})
        return service

    def create_service(self, data: ExtraServiceCreate) -> ExtraService:
        service = ExtraService(tenant_id=self.tenant_id, **data.model_dump())
        self.db.add(service)
        self.db.commit()
        self.db.refresh(service)
        logger.info(f"Extra service {service.name} created for tenant {self.tenant_id}")
        return service

    def update_service(self, service_id: int, data: ExtraServiceUpdate) -> ExtraService:
        """修改服务；改价只影响之后添加的消费"""
        service = self.require_service(service_id)
        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(service, key, value)
        self.db.commit()
        self.db.refresh(service)
        return service

    def delete_service(self, service_id: int) -> None:
        """删除服务，已被预订使用的只能停用"""
        service = self.require_service(service_id)
        used = self.db.query(BookingExtra).filter(
            BookingExtra.tenant_id == self.tenant_id,
            BookingExtra.service_id == service_id
        ).count()
        if used > 0:
            raise ConflictError(
                f"服务 {service.name} 已被 {used} 条预订使用，请改为停用",
                {"service_id": service_id}
            )
        self.db.delete(service)
        self.db.commit()
        logger.info(f"Extra service {service_id} deleted for tenant {self.tenant_id}")

    # ============== 预订消费 ==============

    def _require_booking(self, booking_id: int) -> Booking:
        booking = self.db.query(Booking).filter(
            Booking.tenant_id == self.tenant_id,
            Booking.id == booking_id
        ).first()
        if not booking:
            raise NotFoundError("预订不存在", {"booking_id": booking_id})
        return booking

    def _require_open_booking(self, booking_id: int) -> Booking:
        booking = self._require_booking(booking_id)
        if booking.status in CLOSED_BOOKING_STATUSES:
            raise InvalidStateError(
                f"预订 {booking_id} 已{booking.status.value}，不能修改附加服务",
                details={"booking_id": booking_id, "status": booking.status.value}
            )
        return booking

    def _require_extra(self, booking_id: int, extra_id: int) -> BookingExtra:
        extra = self.db.query(BookingExtra).filter(
            BookingExtra.tenant_id == self.tenant_id,
            BookingExtra.booking_id == booking_id,
            BookingExtra.id == extra_id
        ).first()
        if not extra:
            raise NotFoundError("预订附加服务不存在", {"booking_id": booking_id, "extra_id": extra_id})
        return extra

    def list_extras(self, booking_id: int) -> List[BookingExtra]:
        self._require_booking(booking_id)
        return self.db.query(BookingExtra).filter(
            BookingExtra.tenant_id == self.tenant_id,
            BookingExtra.booking_id == booking_id
        ).order_by(BookingExtra.created_at.desc(), BookingExtra.id.desc()).all()

    def add_extra(self, booking_id: int, data: BookingExtraCreate) -> BookingExtra:
        """
        为预订行添加附加服务

        Raises:
            NotFoundError: 预订或服务不存在
            ValidationError: 服务已停用
            InvalidStateError: 预订已取消或未到店
        """
        booking = self._require_open_booking(booking_id)
        service = self.require_service(data.service_id)
        if not service.is_active:
            raise ValidationError("服务已停用", {"service_id": f"服务 {service.name} 已停用"})

        price = Decimal(service.rate)
        extra = BookingExtra(
            tenant_id=self.tenant_id,
            booking_id=booking.id,
            service_id=service.id,
            quantity=data.quantity,
            price=price,
            total_amount=price * data.quantity,
            notes=data.notes
        )
        self.db.add(extra)
        self.db.commit()
        self.db.refresh(extra)
        logger.info(
            f"Service {service.name} x{data.quantity} added to booking {booking.id} "
            f"({booking.check_in_number})"
        )
        return extra

    def update_extra(self, booking_id: int, extra_id: int, data: BookingExtraUpdate) -> BookingExtra:
        """修改数量时按快照单价重算金额"""
        self._require_open_booking(booking_id)
        extra = self._require_extra(booking_id, extra_id)
        update_data = data.model_dump(exclude_unset=True)
        if "quantity" in update_data:
            extra.quantity = update_data["quantity"]
            extra.total_amount = Decimal(extra.price) * extra.quantity
        if "notes" in update_data:
            extra.notes = update_data["notes"]
        self.db.commit()
        self.db.refresh(extra)
        return extra

    def remove_extra(self, booking_id: int, extra_id: int) -> None:
        self._require_open_booking(booking_id)
        extra = self._require_extra(booking_id, extra_id)
        self.db.delete(extra)
        self.db.commit()
        logger.info(f"Booking extra {extra_id} removed from booking {booking_id}")

    def extras_total(self, booking_ids: Iterable[int]) -> Decimal:
        """若干预订行的附加服务合计"""
        ids = list(booking_ids)
        if not ids:
            return Decimal("0")
        total: Optional[Decimal] = self.db.query(func.sum(BookingExtra.total_amount)).filter(
            BookingExtra.tenant_id == self.tenant_id,
            BookingExtra.booking_id.in_(ids)
        ).scalar()
        return Decimal(total or 0).quantize(Decimal("0.01"))

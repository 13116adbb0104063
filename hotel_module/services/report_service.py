"""
报表服务 - 经营指标
只读聚合：从房间表和预订行推导入住率、ADR、RevPAR，不做任何写操作
"""
from typing import Iterator, Optional
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
import logging
from sqlalchemy import func
from sqlalchemy.orm import Session
from hotel_module.config import settings
from hotel_module.errors import ValidationError
from hotel_module.models.ontology import Room, RoomStatus, Booking, BookingStatus

logger = logging.getLogger(__name__)

# 计入历史入住率的预订状态（实际入住过）
STAYED_STATUSES = (BookingStatus.CHECKED_IN, BookingStatus.CHECKED_OUT)


def _round2(value) -> float:
    return float(Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _rate(part, whole) -> Decimal:
    """part / whole × 100，whole 为 0 时返回 0"""
    if not whole:
        return Decimal("0")
    return Decimal(part) * 100 / Decimal(whole)


class ReportService:
    """报表服务"""

    def __init__(self, db: Session, tenant_id: str):
        self.db = db
        self.tenant_id = tenant_id

    def _total_rooms(self) -> int:
        return self.db.query(Room).filter(Room.tenant_id == self.tenant_id).count()

    def _revenue_rows(self, *criteria):
        return self.db.query(Booking.room_rent).filter(
            Booking.tenant_id == self.tenant_id,
            Booking.status != BookingStatus.CANCELLED,
            *criteria
        ).all()

    def summary(self, today: Optional[date] = None) -> dict:
        """
        当日经营概览

        - occupancy_rate = 入住中房间 / 全部房间 × 100
        - total_revenue_today = 今日入住日期且未取消的预订行房费合计
        - adr = 营收 / 售出间数，revpar = 营收 / 全部房间
        """
        today = today or date.today()
        total_rooms = self._total_rooms()
        occupied = self.db.query(Room).filter(
            Room.tenant_id == self.tenant_id,
            Room.status == RoomStatus.OCCUPIED
        ).count()

        rows = self._revenue_rows(Booking.check_in_date == today)
        revenue = sum((r.room_rent for r in rows), Decimal("0"))
        sold = len(rows)

        return {
            "occupancy_rate": _round2(min(_rate(occupied, total_rooms), Decimal("100"))),
            "occupied_rooms": occupied,
            "total_rooms": total_rooms,
            "total_revenue_today": _round2(revenue),
            "total_rooms_sold_today": sold,
            "adr": _round2(revenue / sold) if sold else 0.0,
            "revpar": _round2(revenue / total_rooms) if total_rooms else 0.0,
        }

    def _day_point(self, day: date, total_rooms: int) -> dict:
        stayed = self.db.query(func.count(func.distinct(Booking.room_id))).filter(
            Booking.tenant_id == self.tenant_id,
            Booking.room_id.isnot(None),
            Booking.status.in_(STAYED_STATUSES),
            Booking.check_in_date <= day,
            Booking.check_out_date > day
        ).scalar() or 0

        day_start = datetime.combine(day, datetime.min.time())
        day_end = day_start + timedelta(days=1)
        rows = self._revenue_rows(Booking.created_at >= day_start, Booking.created_at < day_end)
        revenue = sum((r.room_rent for r in rows), Decimal("0"))

        return {
            "date": day,
            "revenue": _round2(revenue),
            "occupancy": _round2(min(_rate(stayed, total_rooms), Decimal("100"))),
        }

    def _iter_trends(self, window_days: int, today: date) -> Iterator[dict]:
        total_rooms = self._total_rooms()
        start = today - timedelta(days=window_days - 1)
        for offset in range(window_days):
            yield self._day_point(start + timedelta(days=offset), total_rooms)

    def trends(self, window_days: Optional[int] = None, today: Optional[date] = None) -> Iterator[dict]:
        """
        最近 window_days 天（含今天）的每日 {date, revenue, occupancy}，按日期升序

        参数在调用时立即校验；返回的生成器逐日计算，只能遍历一次
        """
        window_days = settings.REPORT_TREND_DAYS if window_days is None else window_days
        if window_days < 1 or window_days > settings.REPORT_TREND_MAX_DAYS:
            raise ValidationError(
                "趋势窗口天数超出范围",
                {"window_days": f"取值 1 - {settings.REPORT_TREND_MAX_DAYS}"}
            )
        logger.debug(f"Trend report for tenant {self.tenant_id}: {window_days} days")
        return self._iter_trends(window_days, today or date.today())

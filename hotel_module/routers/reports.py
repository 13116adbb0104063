"""
报表路由
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from hotel_module.database import get_db
from hotel_module.models.schemas import ReportSummary, TrendPoint
from hotel_module.security.auth import CallerIdentity, get_current_user
from hotel_module.services.report_service import ReportService
from hotel_module.routers.responses import success

router = APIRouter(prefix="/reports", tags=["报表"])


@router.get("/summary")
def get_summary(
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """今日入住率、营收、ADR、RevPAR"""
    return success(ReportSummary(**ReportService(db, current_user.tenant_id).summary()))


@router.get("/trends")
def get_trends(
    days: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """最近 N 天的每日营收与入住率"""
    points = ReportService(db, current_user.tenant_id).trends(days)
    return success([TrendPoint(**p) for p in points])

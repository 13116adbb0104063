"""
领域事件查询路由
只读查看当前租户最近发布的事件，用于排查入住、退房等联动
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from hotel_module.security.auth import CallerIdentity, get_current_user
from hotel_module.services.event_bus import event_bus
from hotel_module.routers.responses import success

router = APIRouter(prefix="/events", tags=["领域事件"])


@router.get("")
def list_events(
    event_type: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """获取最近的事件（最新的在前）"""
    events = event_bus.get_history(event_type=event_type, tenant_id=current_user.tenant_id, limit=limit)
    return success([e.to_dict() for e in events])

"""
渠道代理路由
"""
from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from hotel_module.database import get_db
from hotel_module.models.schemas import AgentCreate, AgentUpdate, AgentResponse
from hotel_module.security.auth import CallerIdentity, get_current_user, require_admin
from hotel_module.services.agent_service import AgentService
from hotel_module.routers.responses import success

router = APIRouter(prefix="/agents", tags=["渠道代理"])


@router.get("")
def list_agents(
    is_active: Optional[bool] = None,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    agents = AgentService(db, current_user.tenant_id).get_agents(is_active)
    return success([AgentResponse.model_validate(a) for a in agents])


@router.get("/{agent_id}")
def get_agent(
    agent_id: int,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    agent = AgentService(db, current_user.tenant_id).require_agent(agent_id)
    return success(AgentResponse.model_validate(agent))


@router.post("", status_code=201)
def create_agent(
    data: AgentCreate,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_admin)
):
    agent = AgentService(db, current_user.tenant_id).create_agent(data)
    return success(AgentResponse.model_validate(agent), "代理创建成功")


@router.patch("/{agent_id}")
def update_agent(
    agent_id: int,
    data: AgentUpdate,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_admin)
):
    agent = AgentService(db, current_user.tenant_id).update_agent(agent_id, data)
    return success(AgentResponse.model_validate(agent), "代理信息已更新")

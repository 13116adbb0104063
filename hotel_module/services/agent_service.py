"""
渠道代理服务
代理只被预订引用，佣金在读取组预订时按分成比例计算
"""
from typing import List, Optional
import logging
from sqlalchemy.orm import Session
from hotel_module.errors import NotFoundError, ConflictError
from hotel_module.models.ontology import Agent
from hotel_module.models.schemas import AgentCreate, AgentUpdate

logger = logging.getLogger(__name__)


class AgentService:
    """代理服务"""

    def __init__(self, db: Session, tenant_id: str):
        self.db = db
        self.tenant_id = tenant_id

    def _query(self):
        return self.db.query(Agent).filter(Agent.tenant_id == self.tenant_id)

    def get_agents(self, is_active: Optional[bool] = None) -> List[Agent]:
        query = self._query()
        if is_active is not None:
            query = query.filter(Agent.is_active == is_active)
        return query.order_by(Agent.agent_code).all()

    def get_agent(self, agent_id: int) -> Optional[Agent]:
        return self._query().filter(Agent.id == agent_id).first()

    def require_agent(self, agent_id: int) -> Agent:
        agent = self.get_agent(agent_id)
        if not agent:
            raise NotFoundError("代理不存在", {"agent_id": agent_id})
        return agent

    def create_agent(self, data: AgentCreate) -> Agent:
        """创建代理，同一租户下代理编码唯一"""
        if self._query().filter(Agent.agent_code == data.agent_code).first():
            raise ConflictError(f"代理编码 '{data.agent_code}' 已存在")

        agent = Agent(tenant_id=self.tenant_id, **data.model_dump())
        self.db.add(agent)
        self.db.commit()
        self.db.refresh(agent)
        logger.info(f"Agent {agent.agent_code} created for tenant {self.tenant_id}")
        return agent

    def update_agent(self, agent_id: int, data: AgentUpdate) -> Agent:
        agent = self.require_agent(agent_id)
        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(agent, key, value)
        self.db.commit()
        self.db.refresh(agent)
        return agent

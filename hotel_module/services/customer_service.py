"""
客人服务
管理 Customer 对象；预订只引用客人，不修改其状态
"""
from typing import List, Optional
import logging
from sqlalchemy import or_, desc
from sqlalchemy.orm import Session
from hotel_module.errors import NotFoundError, ConflictError
from hotel_module.models.ontology import Customer
from hotel_module.models.schemas import CustomerCreate, CustomerUpdate

logger = logging.getLogger(__name__)


class CustomerService:
    """客人服务"""

    def __init__(self, db: Session, tenant_id: str):
        self.db = db
        self.tenant_id = tenant_id

    def _query(self):
        return self.db.query(Customer).filter(Customer.tenant_id == self.tenant_id)

    def get_customers(self, keyword: Optional[str] = None, limit: int = 100) -> List[Customer]:
        """获取客人列表，按姓名或电话模糊搜索"""
        query = self._query()
        if keyword:
            pattern = f"%{keyword}%"
            query = query.filter(
                or_(
                    Customer.first_name.like(pattern),
                    Customer.last_name.like(pattern),
                    Customer.phone.like(pattern)
                )
            )
        return query.order_by(desc(Customer.created_at), desc(Customer.id)).limit(limit).all()

    def get_customer(self, customer_id: int) -> Optional[Customer]:
        return self._query().filter(Customer.id == customer_id).first()

    def require_customer(self, customer_id: int) -> Customer:
        customer = self.get_customer(customer_id)
        if not customer:
            raise NotFoundError("客人不存在", {"customer_id": customer_id})
        return customer

    def _check_email(self, email: Optional[str], exclude_id: Optional[int] = None) -> None:
        if not email:
            return
        existing = self._query().filter(Customer.email == email).first()
        if existing and existing.id != exclude_id:
            raise ConflictError(f"邮箱 '{email}' 已被其他客人使用")

    def build_customer(self, data: CustomerCreate) -> Customer:
        """
        在当前事务中创建客人，不提交

        组预订内联创建客人时使用，客人与预订一起提交或一起回滚
        """
        self._check_email(data.email)
        customer = Customer(tenant_id=self.tenant_id, **data.model_dump())
        self.db.add(customer)
        self.db.flush()
        return customer

    def create_customer(self, data: CustomerCreate) -> Customer:
        """创建客人"""
        customer = self.build_customer(data)
        self.db.commit()
        self.db.refresh(customer)
        logger.info(f"Customer {customer.id} created for tenant {self.tenant_id}")
        return customer

    def update_customer(self, customer_id: int, data: CustomerUpdate) -> Customer:
        """更新客人信息"""
        customer = self.require_customer(customer_id)
        update_data = data.model_dump(exclude_unset=True)

        if update_data.get("email"):
            update_data["email"] = update_data["email"].strip().lower()
            self._check_email(update_data["email"], exclude_id=customer_id)

        for key, value in update_data.items():
            setattr(customer, key, value)

        self.db.commit()
        self.db.refresh(customer)
        return customer

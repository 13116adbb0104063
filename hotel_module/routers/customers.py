"""
客人管理路由
"""
from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from hotel_module.database import get_db
from hotel_module.models.schemas import CustomerCreate, CustomerUpdate, CustomerResponse
from hotel_module.security.auth import CallerIdentity, get_current_user
from hotel_module.services.customer_service import CustomerService
from hotel_module.routers.responses import success

router = APIRouter(prefix="/customers", tags=["客人管理"])


@router.get("")
def list_customers(
    search: Optional[str] = None,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """获取客人列表，按姓名或电话搜索"""
    customers = CustomerService(db, current_user.tenant_id).get_customers(search, limit)
    return success([CustomerResponse.model_validate(c) for c in customers])


@router.get("/{customer_id}")
def get_customer(
    customer_id: int,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    customer = CustomerService(db, current_user.tenant_id).require_customer(customer_id)
    return success(CustomerResponse.model_validate(customer))


@router.post("", status_code=201)
def create_customer(
    data: CustomerCreate,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    customer = CustomerService(db, current_user.tenant_id).create_customer(data)
    return success(CustomerResponse.model_validate(customer), "客人创建成功")


@router.patch("/{customer_id}")
def update_customer(
    customer_id: int,
    data: CustomerUpdate,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    customer = CustomerService(db, current_user.tenant_id).update_customer(customer_id, data)
    return success(CustomerResponse.model_validate(customer), "客人信息已更新")

"""
附加服务目录路由
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from hotel_module.database import get_db
from hotel_module.models.schemas import ExtraServiceCreate, ExtraServiceUpdate, ExtraServiceResponse
from hotel_module.security.auth import CallerIdentity, get_current_user, require_admin
from hotel_module.services.catalog_service import ServiceCatalogService
from hotel_module.routers.responses import success

router = APIRouter(prefix="/services", tags=["附加服务"])


@router.get("")
def list_services(
    active_only: bool = False,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """获取服务目录"""
    services = ServiceCatalogService(db, current_user.tenant_id).get_services(active_only)
    return success([ExtraServiceResponse.model_validate(s) for s in services])


@router.get("/{service_id}")
def get_service(
    service_id: int,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    service = ServiceCatalogService(db, current_user.tenant_id).require_service(service_id)
    return success(ExtraServiceResponse.model_validate(service))


@router.post("", status_code=201)
def create_service(
    data: ExtraServiceCreate,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_admin)
):
    service = ServiceCatalogService(db, current_user.tenant_id).create_service(data)
    return success(ExtraServiceResponse.model_validate(service), "服务已创建")


@router.patch("/{service_id}")
def update_service(
    service_id: int,
    data: ExtraServiceUpdate,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_admin)
):
    service = ServiceCatalogService(db, current_user.tenant_id).update_service(service_id, data)
    return success(ExtraServiceResponse.model_validate(service), "服务已更新")


@router.delete("/{service_id}")
def delete_service(
    service_id: int,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_admin)
):
    """删除服务；已被预订使用的返回 409"""
    ServiceCatalogService(db, current_user.tenant_id).delete_service(service_id)
    return success(None, f"服务 {service_id} 已删除")

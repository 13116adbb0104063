"""
库存路由
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from hotel_module.database import get_db
from hotel_module.models.ontology import InventoryCategory
from hotel_module.models.schemas import (
    InventoryItemCreate, InventoryItemUpdate, InventoryAdjust, InventoryItemResponse
)
from hotel_module.security.auth import CallerIdentity, get_current_user, require_admin, require_stock_keeper
from hotel_module.services.inventory_service import InventoryService
from hotel_module.routers.responses import success

router = APIRouter(prefix="/inventory", tags=["库存管理"])


def _service(db: Session, user: CallerIdentity) -> InventoryService:
    return InventoryService(db, user.tenant_id)


@router.get("")
def list_items(
    category: Optional[InventoryCategory] = None,
    low_stock: Optional[bool] = Query(None, alias="lowStock"),
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    """获取库存列表；lowStock=true 只返回低库存物品"""
    items = _service(db, current_user).get_items(category, low_stock)
    return success([InventoryItemResponse.model_validate(i) for i in items])


@router.get("/{item_id}")
def get_item(
    item_id: int,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    item = _service(db, current_user).require_item(item_id)
    return success(InventoryItemResponse.model_validate(item))


@router.post("", status_code=201)
def create_item(
    data: InventoryItemCreate,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_stock_keeper)
):
    """新增库存物品"""
    item = _service(db, current_user).create_item(data)
    return success(InventoryItemResponse.model_validate(item), "物品已添加")


@router.patch("/{item_id}")
def update_item(
    item_id: int,
    data: InventoryItemUpdate,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_stock_keeper)
):
    """更新库存物品"""
    item = _service(db, current_user).update_item(item_id, data)
    return success(InventoryItemResponse.model_validate(item), "物品已更新")


@router.post("/{item_id}/adjust")
def adjust_item(
    item_id: int,
    data: InventoryAdjust,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_stock_keeper)
):
    """按增量调整库存（正数补货，负数领用）"""
    item = _service(db, current_user).adjust_quantity(item_id, data.delta)
    return success(InventoryItemResponse.model_validate(item), "库存已调整")


@router.delete("/{item_id}")
def delete_item(
    item_id: int,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_admin)
):
    _service(db, current_user).delete_item(item_id)
    return success(None, f"物品 {item_id} 已删除")

"""
租户上下文
- 独立部署 (silo)：设置 APP_TENANT_ID，租户固定，忽略请求头
- 平台托管 (hub)：从 x-tenant-id 请求头读取租户
租户只是不透明的隔离键；模块开通状态来自 APP_SUBSCRIBED_MODULES
"""
from typing import Optional
import logging
from fastapi import Header
from hotel_module.config import settings
from hotel_module.errors import ValidationError, ForbiddenError

logger = logging.getLogger(__name__)

TENANT_HEADER = "x-tenant-id"


def runtime_mode() -> str:
    return "silo" if settings.APP_TENANT_ID else "hub"


def ensure_module_enabled(modules=None) -> None:
    """
    酒店模块未开通时拒绝访问

    modules 为 None 时读取 APP_SUBSCRIBED_MODULES，未配置视为全部开通；
    令牌显式携带的列表按原样判断，空列表表示没有开通任何模块
    """
    slug = settings.HOTEL_MODULE_SLUG.lower()
    if modules is None:
        subscribed = settings.subscribed_modules
        if not subscribed:
            return
    else:
        subscribed = [m.lower() for m in modules]
    if slug not in subscribed:
        raise ForbiddenError(f"模块 '{slug}' 未开通", {"module": slug})


def get_tenant_id(x_tenant_id: Optional[str] = Header(None, alias=TENANT_HEADER)) -> str:
    """依赖注入：解析当前请求的租户"""
    if settings.APP_TENANT_ID:
        tenant_id = settings.APP_TENANT_ID
    else:
        tenant_id = (x_tenant_id or "").strip()
        if not tenant_id:
            raise ValidationError("缺少租户标识", {TENANT_HEADER: "请求头必填"})

    ensure_module_enabled()
    return tenant_id

"""
调用方身份
令牌由平台认证服务签发，本模块只校验并读取 sub / role / tenant_id / modules，
不保存用户，也不处理登录
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, List
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from hotel_module.config import settings
from hotel_module.errors import AuthError, ForbiddenError
from hotel_module.security.tenant import get_tenant_id, ensure_module_enabled

logger = logging.getLogger(__name__)

ROLE_SUPERUSER = "superuser"
ROLE_ADMIN = "admin"
ROLE_AGENT = "agent"
ROLE_USER = "user"
ALL_ROLES = (ROLE_SUPERUSER, ROLE_ADMIN, ROLE_AGENT, ROLE_USER)

security = HTTPBearer(auto_error=False)


@dataclass
class CallerIdentity:
    """已认证的调用方"""
    user_id: str
    role: str
    tenant_id: str
    modules: List[str] = field(default_factory=list)


def create_access_token(user_id, role: str, tenant_id: Optional[str] = None,
                        modules: Optional[List[str]] = None,
                        expires_hours: Optional[int] = None) -> str:
    """签发令牌（仅供工具和测试使用）"""
    expire = datetime.now(timezone.utc) + timedelta(hours=expires_hours or settings.ACCESS_TOKEN_EXPIRE_HOURS)
    to_encode = {
        "sub": str(user_id),
        "role": role,
        "exp": expire
    }
    if tenant_id is not None:
        to_encode["tenant_id"] = tenant_id
    if modules is not None:
        to_encode["modules"] = modules
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict:
    """解码 JWT token"""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise AuthError("无效的认证凭证")


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    tenant_id: str = Depends(get_tenant_id)
) -> CallerIdentity:
    """获取当前调用方，令牌绑定的租户必须与请求租户一致"""
    if credentials is None:
        raise AuthError("未提供认证凭证")

    payload = decode_token(credentials.credentials)
    user_id = payload.get("sub")
    role = payload.get("role")
    if not user_id or role not in ALL_ROLES:
        raise AuthError("认证凭证缺少有效的用户或角色")

    token_tenant = payload.get("tenant_id")
    if token_tenant is not None and token_tenant != tenant_id:
        logger.warning(f"User {user_id} token bound to tenant {token_tenant} used for tenant {tenant_id}")
        raise ForbiddenError("无权访问该租户", {"tenant_id": tenant_id})

    modules = payload.get("modules")
    if modules is not None:
        ensure_module_enabled(modules)

    return CallerIdentity(user_id=str(user_id), role=role, tenant_id=tenant_id, modules=list(modules or []))


def require_roles(*roles: str):
    """角色校验依赖"""
    async def role_checker(current_user: CallerIdentity = Depends(get_current_user)) -> CallerIdentity:
        if current_user.role not in roles:
            raise ForbiddenError("权限不足", {"required_roles": list(roles)})
        return current_user
    return role_checker


# 便捷的角色检查器
require_admin = require_roles(ROLE_SUPERUSER, ROLE_ADMIN)
require_front_desk = require_roles(ROLE_SUPERUSER, ROLE_ADMIN, ROLE_USER)
require_stock_keeper = require_roles(ROLE_SUPERUSER, ROLE_ADMIN, ROLE_AGENT)

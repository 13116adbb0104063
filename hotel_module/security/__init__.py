# Security module
from hotel_module.security.auth import (
    CallerIdentity, create_access_token, get_current_user, require_roles,
    require_admin, require_front_desk, require_stock_keeper
)
from hotel_module.security.tenant import get_tenant_id

__all__ = [
    'CallerIdentity', 'create_access_token', 'get_current_user', 'require_roles',
    'require_admin', 'require_front_desk', 'require_stock_keeper', 'get_tenant_id'
]

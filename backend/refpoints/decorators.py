# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services.tenant_service import TenantAccessError, resolve_tenant

TENANT_HEADER = "X-Tenant"


def require_tenant(f):
    """
    Resolve the tenant for this request.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.org_id: The organization ID (tenant context) - REQUIRED
    - g.organization: The Organization row

    Returns 401 when the X-Tenant header is missing or unknown, 403 when
    the organization is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            org = resolve_tenant(request.headers.get(TENANT_HEADER))
        except TenantAccessError as e:
            return jsonify({"message": str(e), "error": "TenantAccessError"}), e.status_code

        g.org_id = org.id
        g.organization = org
        return f(*args, **kwargs)

    return decorated_function

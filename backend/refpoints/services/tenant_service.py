"""
Multi-Tenant Service: Tenant resolution and organization management

WHY: Every API request belongs to exactly one shop (Organization). Routes
resolve it once through @require_tenant and pass g.org_id down to services;
services filter every query by org_id.
"""

from ..errors import InvalidInput
from ..extensions import db
from ..models import Organization


class TenantAccessError(Exception):
    """Raised when a request has no usable tenant context."""

    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.status_code = status_code


def resolve_tenant(code: str | None) -> Organization:
    """Look up an active organization by its code (the X-Tenant header)."""
    if not code or not code.strip():
        raise TenantAccessError("Tenant header required")

    org = db.session.query(Organization).filter_by(code=code.strip().upper()).first()
    if not org:
        raise TenantAccessError("Unknown tenant")
    if not org.is_active:
        raise TenantAccessError("Tenant is deactivated", status_code=403)
    return org


def create_organization(name: str, code: str) -> Organization:
    name = (name or "").strip()
    code = (code or "").strip().upper()
    if not name or not code:
        raise InvalidInput("name and code are required")
    if db.session.query(Organization).filter_by(code=code).first():
        raise InvalidInput(f"Organization code {code} already exists")

    org = Organization(name=name, code=code, is_active=True)
    db.session.add(org)
    db.session.commit()
    return org


def list_organizations() -> list[Organization]:
    return db.session.query(Organization).order_by(Organization.id).all()

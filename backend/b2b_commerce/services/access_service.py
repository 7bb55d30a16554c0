from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from b2b_commerce.errors import AccessError, NotFoundError, ValidationError
from b2b_commerce.models.organization import Organization, OrganizationMembership, User

MANAGER_ROLES = ("admin", "manager")


@dataclass(frozen=True)
class AccessContext:
    organization_id: int
    subdomain: str
    user_id: int
    role: str

    @property
    def can_manage(self) -> bool:
        return self.role in MANAGER_ROLES


def subdomain_from_host(host: Optional[str]) -> Optional[str]:
    """'acme.example.com:8000' -> 'acme'; bare hosts like 'localhost' -> None."""
    if not host:
        return None
    hostname = host.split(":", 1)[0].strip().lower()
    parts = hostname.split(".")
    if len(parts) < 2 or parts[0] in ("", "localhost", "www"):
        return None
    return parts[0]


class AccessResolver:
    def __init__(self, db: Session):
        self.db = db

    def resolve(
        self,
        host: Optional[str],
        auth_user_id: Optional[str],
        subdomain_override: Optional[str] = None,
    ) -> AccessContext:
        if not auth_user_id:
            raise AccessError("Unauthorized", status_code=401)

        subdomain = (subdomain_override or "").strip().lower() or subdomain_from_host(host)
        if not subdomain:
            raise ValidationError("Organization context required")

        org = (
            self.db.query(Organization)
            .filter(Organization.subdomain == subdomain, Organization.active == True)
            .first()
        )
        if not org:
            raise NotFoundError("Organization not found")

        user = self.db.query(User).filter(User.auth_user_id == auth_user_id).first()
        if not user:
            raise NotFoundError("User not found")

        membership = (
            self.db.query(OrganizationMembership)
            .filter(
                OrganizationMembership.organization_id == org.id,
                OrganizationMembership.user_id == user.id,
                OrganizationMembership.active == True,
            )
            .first()
        )
        if not membership:
            raise AccessError("Access denied")

        return AccessContext(
            organization_id=org.id, subdomain=org.subdomain, user_id=user.id, role=membership.role
        )


def require_roles(ctx: AccessContext, *roles: str) -> None:
    if ctx.role not in roles:
        raise AccessError("Insufficient permissions")


def ensure_cart_access(ctx: AccessContext, cart) -> None:
    """Cart owner, or an admin/manager of the cart's organization."""
    if cart.organization_id != ctx.organization_id:
        raise NotFoundError("Cart not found")
    if cart.user_id != ctx.user_id and not ctx.can_manage:
        raise AccessError("Access denied to this cart")

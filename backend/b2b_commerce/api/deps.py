from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from b2b_commerce.adapters.commerce_backend import HttpCommerceBackend
from b2b_commerce.config import settings
from b2b_commerce.db import get_db
from b2b_commerce.services.access_service import AccessContext, AccessResolver
from b2b_commerce.services.remote_sync_service import RemoteSyncService


@lru_cache
def _http_backend() -> HttpCommerceBackend:
    return HttpCommerceBackend()


def get_commerce_backend():
    """Remote commerce backend, or None when mirroring is not configured."""
    if not settings.COMMERCE_BACKEND_URL:
        return None
    return _http_backend()


def get_access(
    request: Request,
    db: Session = Depends(get_db),
    x_user_id: Optional[str] = Header(default=None),
    x_organization_subdomain: Optional[str] = Header(default=None),
) -> AccessContext:
    # identity is asserted by the auth proxy in front of the service
    host = request.headers.get("host") or request.url.hostname
    return AccessResolver(db).resolve(host, x_user_id, x_organization_subdomain)


def get_sync(
    db: Session = Depends(get_db),
    ctx: AccessContext = Depends(get_access),
    backend=Depends(get_commerce_backend),
) -> RemoteSyncService:
    return RemoteSyncService(db, backend, subdomain=ctx.subdomain)

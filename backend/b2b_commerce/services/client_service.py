from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from b2b_commerce.config import settings
from b2b_commerce.errors import AccessError, ConflictError, NotFoundError, RemoteUnavailableError, ValidationError
from b2b_commerce.models.client import Client
from b2b_commerce.repositories.cart_repo import CartRepository
from b2b_commerce.repositories.client_repo import ClientRepository
from b2b_commerce.repositories.order_repo import OrderRepository
from b2b_commerce.services.access_service import MANAGER_ROLES, AccessContext, require_roles
from b2b_commerce.services.remote_sync_service import RemoteSyncService, SyncResult
from b2b_commerce.utils.logging import get_logger
from b2b_commerce.utils.transactions import unit_of_work

log = get_logger(__name__)


class ClientService:
    """B2B customer records, mirrored to the commerce backend as customers."""

    def __init__(self, db: Session, ctx: AccessContext, sync: Optional[RemoteSyncService] = None):
        self.db = db
        self.ctx = ctx
        self.sync = sync
        self.clients = ClientRepository(db)
        self.carts = CartRepository(db)
        self.orders = OrderRepository(db)

    def list_clients(self, q: Optional[str] = None, active: Optional[bool] = True) -> List[Client]:
        return self.clients.list(self.ctx.organization_id, q=q, active=active)

    def get_client(self, client_id: int) -> Client:
        client = self.clients.get(self.ctx.organization_id, client_id, include_inactive=True)
        if not client:
            raise NotFoundError("Client not found")
        return client

    def _check_duplicates(self, company_name, contact_email, exclude_id=None) -> None:
        dup = self.clients.find_duplicate(
            self.ctx.organization_id, company_name, contact_email, exclude_id=exclude_id
        )
        if not dup:
            return
        if company_name and dup.company_name.lower() == company_name.lower():
            raise ConflictError("A client with this company name already exists")
        raise ConflictError("A client with this contact email already exists")

    def create_client(self, fields: dict, force_sync: bool = False) -> Tuple[Client, Optional[SyncResult]]:
        require_roles(self.ctx, *MANAGER_ROLES)
        self._check_duplicates(fields.get("company_name"), fields.get("contact_email"))
        values = {k: v for k, v in fields.items() if v is not None}
        values.setdefault("preferred_currency", settings.DEFAULT_CURRENCY)
        try:
            with unit_of_work(self.db):
                client = self.clients.create(self.ctx.organization_id, self.ctx.user_id, **values)
        except IntegrityError:
            raise ConflictError("A client with this company name or contact email already exists")
        log.info("client %s created org=%s", client.id, self.ctx.organization_id)

        result = None
        if self.sync is not None:
            result = self.sync.sync_client(client, force=force_sync)
            if not result.success and not result.skipped:
                log.warning("customer sync failed for client %s: %s", client.id, result.error)
        return self.get_client(client.id), result

    def update_client(self, client_id: int, fields: dict) -> Tuple[Client, Optional[SyncResult]]:
        require_roles(self.ctx, *MANAGER_ROLES)
        client = self.get_client(client_id)
        values = {k: v for k, v in fields.items() if v is not None}
        self._check_duplicates(
            values.get("company_name"), values.get("contact_email"), exclude_id=client.id
        )
        try:
            with unit_of_work(self.db):
                self.clients.update(client, **values)
        except IntegrityError:
            raise ConflictError("A client with this company name or contact email already exists")

        result = None
        if self.sync is not None and client.active:
            result = self.sync.sync_client(client)
            if not result.success and not result.skipped:
                log.warning("customer sync failed for client %s: %s", client.id, result.error)
        return self.get_client(client.id), result

    def delete_client(self, client_id: int) -> Client:
        """Soft delete; refused while the client has open orders or active carts."""
        if self.ctx.role != "admin":
            raise AccessError("Admin permissions required")
        client = self.get_client(client_id)
        org = self.ctx.organization_id
        if self.orders.count_open_for_client(org, client.id):
            raise ValidationError(
                "Cannot delete client with active orders. Please complete or cancel orders first."
            )
        if self.carts.count_active_for_client(org, client.id):
            raise ValidationError(
                "Cannot delete client with active carts. Please complete or abandon carts first."
            )
        with unit_of_work(self.db):
            self.clients.update(client, active=False)
        log.info("client %s deactivated by user=%s", client.id, self.ctx.user_id)

        if self.sync is not None:
            self.sync.delete_client(client)
        return self.get_client(client.id)

    def sync_client(self, client_id: int, force_sync: bool = False, create_if_not_exists: bool = True) -> dict:
        require_roles(self.ctx, *MANAGER_ROLES)
        client = self.get_client(client_id)
        if self.sync is None or not self.sync.validate_connection():
            raise RemoteUnavailableError("Unable to connect to the commerce backend")

        result = self.sync.sync_client(client, force=force_sync, create_if_not_exists=create_if_not_exists)
        if result.success:
            status = "synced"
        elif result.conflicts:
            status = "conflict"
        else:
            status = "error"
        log.info("client %s manual sync: %s", client.id, status)
        return {
            "success": result.success,
            "remote_customer_id": result.remote_id,
            "sync_status": status,
            "error": result.error,
            "conflicts": result.conflicts,
            "last_sync_at": datetime.now(timezone.utc).isoformat(),
        }

    def sync_status(self, client_id: int) -> dict:
        client = self.get_client(client_id)
        status = "pending"
        exists = None
        if client.remote_customer_id:
            exists = self.sync.customer_exists(client) if self.sync is not None else None
            status = "synced" if exists else "error"
        return {
            "success": bool(exists),
            "remote_customer_id": client.remote_customer_id,
            "sync_status": status,
            "last_sync_at": client.updated_at.isoformat() if client.updated_at else None,
        }

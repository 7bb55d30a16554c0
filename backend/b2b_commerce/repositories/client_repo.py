from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from b2b_commerce.models.client import Client


class ClientRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, organization_id: int, client_id: int, include_inactive: bool = False) -> Optional[Client]:
        q = self.db.query(Client).filter(
            Client.id == client_id, Client.organization_id == organization_id
        )
        if not include_inactive:
            q = q.filter(Client.active == True)
        return q.first()

    def list(
        self, organization_id: int, q: Optional[str] = None, active: Optional[bool] = True
    ) -> List[Client]:
        query = self.db.query(Client).filter(Client.organization_id == organization_id)
        if active is not None:
            query = query.filter(Client.active == active)
        if q:
            like = f"%{q}%"
            query = query.filter(
                or_(
                    Client.company_name.ilike(like),
                    Client.contact_name.ilike(like),
                    Client.contact_email.ilike(like),
                )
            )
        return query.order_by(Client.company_name).all()

    def find_duplicate(
        self,
        organization_id: int,
        company_name: Optional[str],
        contact_email: Optional[str],
        exclude_id: Optional[int] = None,
    ) -> Optional[Client]:
        """Any client in the organization already using this company name or email."""
        conds = []
        if company_name:
            conds.append(func.lower(Client.company_name) == company_name.lower())
        if contact_email:
            conds.append(func.lower(Client.contact_email) == contact_email.lower())
        if not conds:
            return None
        q = self.db.query(Client).filter(Client.organization_id == organization_id, or_(*conds))
        if exclude_id is not None:
            q = q.filter(Client.id != exclude_id)
        return q.first()

    def create(self, organization_id: int, created_by: Optional[int], **fields) -> Client:
        c = Client(organization_id=organization_id, created_by=created_by, **fields)
        self.db.add(c)
        self.db.flush()
        return c

    def update(self, client: Client, **fields) -> Client:
        for k, v in fields.items():
            setattr(client, k, v)
        self.db.flush()
        return client

    def set_remote_customer_id(self, client: Client, remote_customer_id: Optional[str]) -> None:
        client.remote_customer_id = remote_customer_id
        self.db.flush()

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from b2b_commerce.api.deps import get_access, get_sync
from b2b_commerce.db import get_db
from b2b_commerce.schemas.client_schema import ClientCreateIn, ClientOut, ClientSyncIn, ClientUpdateIn
from b2b_commerce.services.access_service import AccessContext
from b2b_commerce.services.client_service import ClientService
from b2b_commerce.services.remote_sync_service import RemoteSyncService

router = APIRouter(tags=["clients"])


def _client_service(
    db: Session = Depends(get_db),
    ctx: AccessContext = Depends(get_access),
    sync: RemoteSyncService = Depends(get_sync),
) -> ClientService:
    return ClientService(db, ctx, sync)


def _out(client) -> dict:
    return ClientOut.model_validate(client).model_dump(mode="json")


@router.get("", summary="List clients")
def list_clients(
    q: Optional[str] = Query(None, description="company, contact or email"),
    active: Optional[bool] = Query(True),
    svc: ClientService = Depends(_client_service),
):
    return {"clients": [_out(c) for c in svc.list_clients(q=q, active=active)]}


@router.post("", status_code=201, summary="Create client")
def create_client(payload: ClientCreateIn, svc: ClientService = Depends(_client_service)):
    fields = payload.model_dump(exclude={"force_sync"})
    client, sync = svc.create_client(fields, force_sync=payload.force_sync)
    return {"client": _out(client), "sync": sync.as_dict() if sync else None}


@router.get("/{client_id}", summary="Get client")
def get_client(client_id: int, svc: ClientService = Depends(_client_service)):
    return {"client": _out(svc.get_client(client_id))}


@router.put("/{client_id}", summary="Update client")
def update_client(client_id: int, payload: ClientUpdateIn, svc: ClientService = Depends(_client_service)):
    client, sync = svc.update_client(client_id, payload.model_dump(exclude_unset=True))
    return {"client": _out(client), "sync": sync.as_dict() if sync else None}


@router.delete("/{client_id}", summary="Deactivate client")
def delete_client(client_id: int, svc: ClientService = Depends(_client_service)):
    client = svc.delete_client(client_id)
    return {"client": _out(client), "message": "Client deactivated"}


@router.post("/{client_id}/sync", summary="Sync client to the commerce backend")
def sync_client(
    client_id: int,
    payload: Optional[ClientSyncIn] = Body(default=None),
    svc: ClientService = Depends(_client_service),
):
    payload = payload or ClientSyncIn()
    return svc.sync_client(
        client_id,
        force_sync=payload.force_sync,
        create_if_not_exists=payload.create_if_not_exists,
    )


@router.get("/{client_id}/sync", summary="Client sync status")
def sync_status(client_id: int, svc: ClientService = Depends(_client_service)):
    return svc.sync_status(client_id)

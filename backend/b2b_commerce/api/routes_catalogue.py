from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from b2b_commerce.api.deps import get_access
from b2b_commerce.db import get_db
from b2b_commerce.errors import NotFoundError
from b2b_commerce.repositories.product_repo import ProductRepository
from b2b_commerce.schemas.product_schema import ProductOut
from b2b_commerce.services.access_service import AccessContext

router = APIRouter(tags=["catalogue"])


@router.get("", summary="List products")
def list_products(
    q: Optional[str] = Query(None, description="search term (name or sku)"),
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    ctx: AccessContext = Depends(get_access),
):
    repo = ProductRepository(db)
    products = repo.list(ctx.organization_id, q=q, include_inactive=include_inactive and ctx.can_manage)
    return {"products": [ProductOut.model_validate(p).model_dump() for p in products]}


@router.get("/{product_id}", summary="Get product")
def get_product(
    product_id: int,
    db: Session = Depends(get_db),
    ctx: AccessContext = Depends(get_access),
):
    p = ProductRepository(db).get(ctx.organization_id, product_id)
    if not p:
        raise NotFoundError("Product not found")
    return {"product": ProductOut.model_validate(p).model_dump()}

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from b2b_commerce.api.deps import get_commerce_backend
from b2b_commerce.db import engine
from b2b_commerce.utils.logging import get_logger

log = get_logger(__name__)

router = APIRouter()


@router.get("/health", tags=["health"])
def health(backend=Depends(get_commerce_backend)):
    db_ok = False
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            db_ok = True
    except SQLAlchemyError as e:
        log.error("health: database check failed: %s", e)

    if backend is None:
        commerce = "disabled"
    else:
        commerce = "ok" if backend.validate_connection() else "unreachable"

    return {
        "status": "ok" if db_ok and commerce != "unreachable" else "degraded",
        "db": db_ok,
        "commerce_backend": commerce,
    }

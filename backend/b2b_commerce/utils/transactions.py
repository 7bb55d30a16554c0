from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from b2b_commerce.errors import StoreError
from b2b_commerce.utils.logging import get_logger

log = get_logger(__name__)


@contextmanager
def unit_of_work(session: Session) -> Iterator[Session]:
    """
    Run a block of DB work as one transaction on the given Session.
    Commits when the block exits cleanly; on any exception rolls back and
    re-raises. Driver/ORM failures other than IntegrityError (which callers
    use to detect insert races) are surfaced as StoreError.
    Usage:
        with unit_of_work(db):
            ... DB work ...
    """
    try:
        yield session
        session.commit()
    except IntegrityError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        log.error("store failure, transaction rolled back: %s", e)
        raise StoreError("Persistence failure") from e
    except Exception:
        session.rollback()
        raise

import importlib

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from b2b_commerce.config import settings
from b2b_commerce.utils.logging import get_logger

log = get_logger(__name__)

DATABASE_URL = settings.DATABASE_URL
connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    # sync endpoints run on the threadpool; sessions are per request
    connect_args = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, future=True, echo=False, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# Every module holding mapped classes; imported before create_all so the
# metadata is complete.
MODEL_MODULES = [
    "b2b_commerce.models.organization",
    "b2b_commerce.models.client",
    "b2b_commerce.models.product",
    "b2b_commerce.models.cart",
    "b2b_commerce.models.cart_item",
    "b2b_commerce.models.order",
    "b2b_commerce.models.idempotency",
]


def load_models():
    for mod in MODEL_MODULES:
        importlib.import_module(mod)


def init_db(reset: bool = False):
    """
    Initialize DB schema.

    With reset=True all tables are dropped and recreated (tests, RESET_DB=1).
    Otherwise existing tables are left in place and missing ones created.
    """
    load_models()

    if reset:
        log.info("Resetting database schema")
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)
    log.info("Database initialized (%d tables)", len(Base.metadata.tables))


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

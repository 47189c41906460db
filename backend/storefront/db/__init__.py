import importlib

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from storefront.config import settings
from storefront.utils.logging import get_logger

log = get_logger("db")

Base = declarative_base()

# Ensure all model modules are imported so metadata is populated
MODEL_MODULES = [
    "storefront.models.product",
    "storefront.models.inventory_line",
    "storefront.models.stock_movement",
    "storefront.models.order",
    "storefront.models.cart_sync",
]


def create_db_engine(url: str) -> Engine:
    """
    Build an engine for `url`.

    SQLite connections are switched to BEGIN IMMEDIATE so every transaction
    takes the write lock up front; a read-check-write on inventory lines can
    then never interleave with another writer.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, future=True, echo=False, pool_pre_ping=True)

    eng = create_engine(
        url,
        future=True,
        echo=False,
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(eng, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return eng


engine = create_db_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(
    autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
)


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False, autoflush=False, expire_on_commit=False, bind=bind
    )


def init_db(bind: Engine = None, reset: bool = False):
    """
    Create the schema on `bind` (the default engine when omitted).
    With reset=True (or RESET_DB set) existing tables are dropped first.
    """
    bind = bind or engine
    for mod in MODEL_MODULES:
        importlib.import_module(mod)

    if reset or settings.RESET_DB:
        log.info("Resetting database...")
        Base.metadata.drop_all(bind=bind)

    Base.metadata.create_all(bind=bind)
    log.info("Database initialized: %s", sorted(Base.metadata.tables.keys()))



from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from retailpos.core.config import settings
import logging

logger = logging.getLogger(__name__)


def build_engine(url: str, echo: bool = False):
    """Create an engine; SQLite gets a thread-shareable connection, Postgres a pool."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=echo
        )
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        echo=echo
    )


engine = build_engine(settings.database_url, echo=settings.DEBUG)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Yield a database session for one request."""
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error(f"Database error: {e}")
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind=None):
    """Create all tables registered on Base (development and tests)."""
    # Register every model on Base.metadata before create_all
    import retailpos.modules.products.models  # noqa: F401
    import retailpos.modules.inventory.models  # noqa: F401
    import retailpos.modules.orders.models  # noqa: F401
    import retailpos.modules.returns.models  # noqa: F401
    import retailpos.modules.discounts.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)

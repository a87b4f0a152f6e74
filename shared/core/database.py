from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from shared.core.config import settings

Base = declarative_base()

POOL_SIZE = 5
MAX_OVERFLOW = 5


def build_engine(url: str):
    if url.startswith("sqlite"):
        return create_engine(
            url, connect_args={"check_same_thread": False, "timeout": 30}
        )
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_size=POOL_SIZE,          # max idle connections
        max_overflow=MAX_OVERFLOW,      # max temporary extra connections
        pool_timeout=30       # wait time before failing
    )


# Payments DB
payments_engine = build_engine(settings.database_url)
PaymentsSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=payments_engine)


# Dependency
def get_payments_db():
    db = PaymentsSessionLocal()
    try:
        yield db
    finally:
        db.close()

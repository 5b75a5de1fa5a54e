from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from shared.core.config import ROUTING_DATABASE_URL

Base = declarative_base()

POOL_SIZE = 2
MAX_OVERFLOW = 2


def make_engine(url: str):
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})

    return create_engine(
        url,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_size=POOL_SIZE,          # max idle connections
        max_overflow=MAX_OVERFLOW,      # max temporary extra connections
        pool_timeout=30       # wait time before failing
    )


# Routing DB
routing_engine = make_engine(ROUTING_DATABASE_URL)
RoutingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=routing_engine)


# Dependency


def get_routing_db():
    db = RoutingSessionLocal()
    try:
        yield db
    finally:
        db.close()

import os

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from shared.core.config import Settings  # noqa: E402
from shared.core.database import Base  # noqa: E402
import routing_service.app.models.routing  # noqa: E402,F401
from routing_service.app.schemas.routing.platform_rules_schemas import PlatformRuleCreate  # noqa: E402
from routing_service.app.services.routing.routing_facade import RoutingFacade  # noqa: E402

OPERATOR = "ops@villa-aruna"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine) -> Session:
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(AUDIT_WRITE_ATTEMPTS=3, AUDIT_RETRY_BACKOFF_SECONDS=0.1,
                    DEFAULT_CURRENCY="THB", ROUNDING_DRIFT_RECIPIENT="management")


@pytest.fixture
def sleeps() -> list:
    return []


@pytest.fixture
def facade(db: Session, test_settings: Settings, sleeps: list) -> RoutingFacade:
    return RoutingFacade(db, settings=test_settings, sleep=sleeps.append)


def platform_rule_payload(**overrides) -> PlatformRuleCreate:
    data = {
        "platform_name": "airbnb",
        "platform_display_name": "Airbnb",
        "default_owner_percentage": Decimal("70.00"),
        "default_management_percentage": Decimal("30.00"),
        "routing_type": "split_payout",
        "payment_method": "automatic",
        "platform_fee_percentage": Decimal("3.00"),
        "supports_split_payout": True,
    }
    data.update(overrides)
    return PlatformRuleCreate(**data)


@pytest.fixture
def airbnb_rule(facade: RoutingFacade):
    return facade.upsert_platform_rule(platform_rule_payload(), OPERATOR)

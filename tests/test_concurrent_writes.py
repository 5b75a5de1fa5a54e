"""Two sessions racing for the same active row on one database file."""

from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from shared.core.database import Base
from routing_service.app.core.errors import PlatformRuleConflict, PropertyOverrideConflict
from routing_service.app.crud.routing import booking_routing_crud, platform_rules_crud, property_rules_crud
from routing_service.app.models.routing import BookingPlatformRouting, PlatformRoutingRule, PropertyPlatformRule
from routing_service.app.schemas.routing.property_rules_schemas import PropertyRuleUpsert
from routing_service.app.services.routing.routing_facade import RoutingFacade

from conftest import OPERATOR, platform_rule_payload


@pytest.fixture
def file_engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'routing.db'}",
                           connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sessions(file_engine):
    factory = sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
    first, second = factory(), factory()
    yield first, second
    first.close()
    second.close()


@pytest.fixture
def facades(sessions, test_settings, sleeps):
    first, second = sessions
    return (RoutingFacade(first, settings=test_settings, sleep=sleeps.append),
            RoutingFacade(second, settings=test_settings, sleep=sleeps.append))


def interleave(monkeypatch, module, name, competing_write):
    """Let the first lookup see an empty table, then commit a competing
    write from the other session before the caller continues."""
    original = getattr(module, name)
    state = {"fired": False}

    def lookup(*args, **kwargs):
        found = original(*args, **kwargs)
        if not state["fired"]:
            state["fired"] = True
            competing_write()
        return found

    monkeypatch.setattr(module, name, lookup)


class TestActiveRowUniqueness:
    def test_concurrent_channel_create(self, monkeypatch, facades, sessions) -> None:
        mine, theirs = facades
        interleave(monkeypatch, platform_rules_crud, "get_active_rule_for_channel",
                   lambda: theirs.upsert_platform_rule(platform_rule_payload(), "other@villa-aruna"))

        with pytest.raises(PlatformRuleConflict):
            mine.upsert_platform_rule(platform_rule_payload(), OPERATOR)

        active = sessions[0].query(PlatformRoutingRule).filter(
            PlatformRoutingRule.platform_name == "airbnb",
            PlatformRoutingRule.is_active.is_(True),
        ).count()
        assert active == 1

    def test_concurrent_property_override_create(self, monkeypatch, facades, sessions) -> None:
        mine, theirs = facades
        rule = mine.upsert_platform_rule(platform_rule_payload(), OPERATOR)
        payload = PropertyRuleUpsert(property_id="villa-aruna", platform_rule_id=rule.id,
                                     override_owner_percentage=Decimal("80"),
                                     override_management_percentage=Decimal("20"))
        interleave(monkeypatch, property_rules_crud, "get_active_property_rule",
                   lambda: theirs.upsert_property_override(payload, "other@villa-aruna"))

        with pytest.raises(PropertyOverrideConflict):
            mine.upsert_property_override(payload, OPERATOR)

        assert sessions[0].query(PropertyPlatformRule).filter(
            PropertyPlatformRule.is_active.is_(True)).count() == 1

    def test_concurrent_booking_override_is_superseded(self, monkeypatch, facades, sessions, sleeps) -> None:
        mine, theirs = facades
        interleave(monkeypatch, booking_routing_crud, "get_active_booking_override",
                   lambda: theirs.apply_booking_override(
                       "BK-1", "50", "50", "split_payout", "Split agreed by phone", "other@villa-aruna"))

        applied = mine.apply_booking_override(
            "BK-1", "100", "0", "full_to_owner", "Owner-direct deal", OPERATOR)

        rows = sessions[0].query(BookingPlatformRouting).filter(
            BookingPlatformRouting.booking_id == "BK-1").all()
        assert len(rows) == 2
        assert [r.id for r in rows if r.is_active] == [applied.id]
        # the rerun found the competing override and superseded it
        assert sleeps == [0.1]

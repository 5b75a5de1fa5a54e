"""Tests for the facade: atomic change + audit, fail-closed resolution, overrides."""

from decimal import Decimal

import pytest
from sqlalchemy.exc import DataError, OperationalError

from routing_service.app.core.errors import (
    AuditWriteFailed, EmptyJustification, InvalidIdentifier, InvalidPercentageSplit, RuleNotFound,
    UnresolvableSplit
)
from routing_service.app.crud.routing import routing_audit_crud
from routing_service.app.enum.routing_enum import AuditActionType, AuditRelatedType
from routing_service.app.models.routing import BookingPlatformRouting, PlatformRoutingRule, RoutingAuditLog
from routing_service.app.schemas.routing.property_rules_schemas import PropertyRuleUpsert
from routing_service.app.services.routing.routing_facade import RoutingFacade

from conftest import OPERATOR, platform_rule_payload


class FlakyRecorder:
    """Audit recorder failing the first ``failures`` calls."""

    def __init__(self, failures: int, error=None):
        self.failures = failures
        self.calls = 0
        self.error = error or AuditWriteFailed("audit store unavailable")

    def __call__(self, db, *args, **kwargs):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return routing_audit_crud.record(db, *args, **kwargs)


def override_80_20(rule) -> PropertyRuleUpsert:
    return PropertyRuleUpsert(property_id="villa-aruna", platform_rule_id=rule.id,
                              override_owner_percentage=Decimal("80.00"),
                              override_management_percentage=Decimal("20.00"))


class TestResolveBooking:
    def test_platform_defaults(self, facade: RoutingFacade, airbnb_rule) -> None:
        resolved = facade.resolve_booking("BK-1001", "villa-aruna", "airbnb", Decimal("1000.00"))
        assert resolved.platform_fee_amount == Decimal("30.00")
        assert resolved.owner_amount == Decimal("679.00")
        assert resolved.management_amount == Decimal("291.00")
        assert resolved.currency == "THB"
        assert resolved.platform_rule_id == airbnb_rule.id
        assert resolved.property_override_id is None

    def test_property_override(self, facade: RoutingFacade, airbnb_rule) -> None:
        override = facade.upsert_property_override(override_80_20(airbnb_rule), OPERATOR)
        resolved = facade.resolve_booking("BK-1002", "villa-aruna", "airbnb", Decimal("1000.00"))
        assert resolved.owner_amount == Decimal("776.00")
        assert resolved.management_amount == Decimal("194.00")
        assert resolved.platform_fee_amount == Decimal("30.00")
        assert resolved.property_override_id == override.id

        # other properties still get the platform default
        other = facade.resolve_booking("BK-1003", "villa-samui", "airbnb", Decimal("1000.00"))
        assert other.owner_amount == Decimal("679.00")

    def test_booking_override_wins(self, facade: RoutingFacade, airbnb_rule) -> None:
        facade.upsert_property_override(override_80_20(airbnb_rule), OPERATOR)
        facade.apply_booking_override("BK-1004", "100", "0", "full_to_owner",
                                      "Owner paid cleaning out of pocket", OPERATOR)
        resolved = facade.resolve_booking("BK-1004", "villa-aruna", "airbnb", Decimal("1000.00"))
        assert resolved.routing_type == "full_to_owner"
        assert resolved.owner_amount == Decimal("970.00")
        assert resolved.management_amount == Decimal("0.00")
        assert resolved.platform_fee_amount == Decimal("30.00")

    def test_resolution_is_audited(self, facade: RoutingFacade, airbnb_rule) -> None:
        resolved = facade.resolve_booking("BK-1005", "villa-aruna", "AirBnB", "1000.00", performed_by=OPERATOR)
        entries = list(facade.history(AuditRelatedType.booking, "BK-1005"))
        assert len(entries) == 1
        assert entries[0].action_type == AuditActionType.booking_resolved.value
        assert entries[0].after_values == resolved.model_dump(mode="json")
        assert entries[0].performed_by == OPERATOR

    def test_resolution_is_idempotent(self, facade: RoutingFacade, airbnb_rule) -> None:
        first = facade.resolve_booking("BK-1006", "villa-aruna", "airbnb", Decimal("1234.56"))
        second = facade.resolve_booking("BK-1006", "villa-aruna", "airbnb", Decimal("1234.56"))
        assert first.model_dump_json() == second.model_dump_json()
        assert facade.history(AuditRelatedType.booking, "BK-1006").count() == 2

    def test_unknown_channel(self, facade: RoutingFacade, airbnb_rule, db) -> None:
        with pytest.raises(RuleNotFound):
            facade.resolve_booking("BK-1007", "villa-aruna", "vrbo", Decimal("1000.00"))
        assert db.query(RoutingAuditLog).filter(RoutingAuditLog.related_id == "BK-1007").count() == 0

    def test_inconsistent_merge_fails_closed(self, facade: RoutingFacade, airbnb_rule, db) -> None:
        facade.upsert_property_override(
            PropertyRuleUpsert(property_id="villa-aruna", platform_rule_id=airbnb_rule.id,
                               override_owner_percentage=Decimal("80.00")),
            OPERATOR,
        )
        with pytest.raises(UnresolvableSplit):
            facade.resolve_booking("BK-1008", "villa-aruna", "airbnb", Decimal("1000.00"))
        assert facade.history(AuditRelatedType.booking, "BK-1008").count() == 0


class TestAuditFailure:
    def test_rule_write_rolled_back_when_audit_keeps_failing(
        self, db, test_settings, sleeps
    ) -> None:
        recorder = FlakyRecorder(failures=10)
        facade = RoutingFacade(db, audit_recorder=recorder, settings=test_settings, sleep=sleeps.append)

        with pytest.raises(AuditWriteFailed) as exc:
            facade.upsert_platform_rule(platform_rule_payload(), OPERATOR)

        assert recorder.calls == 3
        assert sleeps == [0.1, 0.2]
        assert exc.value.context["attempts"] == 3
        assert db.query(PlatformRoutingRule).count() == 0
        assert db.query(RoutingAuditLog).count() == 0

    def test_resolution_withheld_when_audit_keeps_failing(
        self, facade: RoutingFacade, airbnb_rule, db, test_settings, sleeps
    ) -> None:
        failing = RoutingFacade(db, audit_recorder=FlakyRecorder(failures=10),
                                settings=test_settings, sleep=sleeps.append)
        with pytest.raises(AuditWriteFailed):
            failing.resolve_booking("BK-2001", "villa-aruna", "airbnb", Decimal("1000.00"))
        assert facade.history(AuditRelatedType.booking, "BK-2001").count() == 0

    def test_transient_failure_is_retried(self, db, test_settings, sleeps) -> None:
        recorder = FlakyRecorder(failures=1)
        facade = RoutingFacade(db, audit_recorder=recorder, settings=test_settings, sleep=sleeps.append)

        rule = facade.upsert_platform_rule(platform_rule_payload(), OPERATOR)

        assert recorder.calls == 2
        assert sleeps == [0.1]
        assert db.query(PlatformRoutingRule).count() == 1
        assert facade.history(AuditRelatedType.platform_rule, rule.id).count() == 1

    def test_operational_error_is_retried(self, db, test_settings, sleeps) -> None:
        recorder = FlakyRecorder(failures=2, error=OperationalError("INSERT", {}, Exception("db gone")))
        facade = RoutingFacade(db, audit_recorder=recorder, settings=test_settings, sleep=sleeps.append)

        facade.upsert_platform_rule(platform_rule_payload(), OPERATOR)
        assert sleeps == [0.1, 0.2]
        assert db.query(RoutingAuditLog).count() == 1

    def test_validation_errors_are_not_retried(self, db, test_settings, sleeps) -> None:
        recorder = FlakyRecorder(failures=0)
        facade = RoutingFacade(db, audit_recorder=recorder, settings=test_settings, sleep=sleeps.append)
        with pytest.raises(InvalidPercentageSplit):
            facade.upsert_platform_rule(
                platform_rule_payload(default_owner_percentage=Decimal("90")), OPERATOR)
        assert recorder.calls == 0
        assert sleeps == []


class TestBookingOverride:
    def test_justification_required(self, facade: RoutingFacade, db) -> None:
        for blank in (None, "", "   "):
            with pytest.raises(EmptyJustification):
                facade.apply_booking_override("BK-3001", "50", "50", "split_payout", blank, OPERATOR)
        assert db.query(BookingPlatformRouting).count() == 0

    def test_split_validated(self, facade: RoutingFacade) -> None:
        with pytest.raises(InvalidPercentageSplit):
            facade.apply_booking_override("BK-3002", "60", "30", "split_payout", "Owner request", OPERATOR)

    def test_new_override_supersedes_previous(self, facade: RoutingFacade, db) -> None:
        first = facade.apply_booking_override(
            "BK-3003", "90", "10", "split_payout", "Owner hosted the guests", OPERATOR)
        second = facade.apply_booking_override(
            "BK-3003", "0", "100", "full_to_management", "Damage deposit retained", "finance@villa-aruna")

        rows = db.query(BookingPlatformRouting).filter(BookingPlatformRouting.booking_id == "BK-3003").all()
        assert len(rows) == 2
        active = [r for r in rows if r.is_active]
        assert [r.id for r in active] == [second.id]
        assert db.get(BookingPlatformRouting, first.id).superseded_at is not None

        entries = list(facade.history(AuditRelatedType.booking_override, "BK-3003"))
        assert [e.action_type for e in entries] == ["override_applied", "override_applied"]
        assert entries[0].before_values is None
        assert entries[1].before_values["id"] == str(first.id)
        assert entries[1].after_values["actual_routing_type"] == "full_to_management"
        assert entries[1].change_reason == "Damage deposit retained"
        assert entries[1].performed_by == "finance@villa-aruna"


class TestBadInputIsNotAnOutage:
    def test_data_error_from_audit_insert_is_not_retried(
        self, monkeypatch, facade: RoutingFacade, airbnb_rule, db, sleeps
    ) -> None:
        def rejecting_flush(*args, **kwargs):
            raise DataError("INSERT INTO routing_audit_logs", {}, Exception("value too long"))

        monkeypatch.setattr(db, "flush", rejecting_flush)
        with pytest.raises(DataError):
            facade.resolve_booking("BK-4001", "villa-aruna", "airbnb", Decimal("1000.00"))
        monkeypatch.undo()

        assert sleeps == []
        assert facade.history(AuditRelatedType.booking, "BK-4001").count() == 0

    def test_connection_loss_still_surfaces_as_audit_failure(self, monkeypatch, db) -> None:
        def dropped_flush(*args, **kwargs):
            raise OperationalError("INSERT INTO routing_audit_logs", {}, Exception("server closed the connection"))

        monkeypatch.setattr(db, "flush", dropped_flush)
        with pytest.raises(AuditWriteFailed):
            routing_audit_crud.record(
                db, AuditActionType.booking_resolved, AuditRelatedType.booking, "BK-4002",
                after_values={}, performed_by=OPERATOR)

    def test_overlong_booking_id_rejected_before_storage(self, facade: RoutingFacade, airbnb_rule, sleeps) -> None:
        with pytest.raises(InvalidIdentifier) as exc:
            facade.resolve_booking("B" * 65, "villa-aruna", "airbnb", Decimal("1000.00"))
        assert exc.value.context == {"field": "booking_id", "max_length": 64}
        assert sleeps == []

    def test_overlong_actor_rejected(self, facade: RoutingFacade) -> None:
        with pytest.raises(InvalidIdentifier):
            facade.apply_booking_override("BK-4003", "50", "50", "split_payout", "Owner request", "x" * 129)

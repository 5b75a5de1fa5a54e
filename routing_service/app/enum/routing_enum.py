from enum import Enum


class RoutingType(str, Enum):

    split_payout = "split_payout"
    full_to_owner = "full_to_owner"
    full_to_management = "full_to_management"


class PaymentMethod(str, Enum):

    automatic = "automatic"
    manual_invoice = "manual_invoice"
    direct_transfer = "direct_transfer"


class BookingPlatform(str, Enum):

    airbnb = "airbnb"
    booking_com = "booking_com"
    vrbo = "vrbo"
    direct_stripe = "direct_stripe"
    marriott = "marriott"
    expedia = "expedia"
    direct = "direct"


class RoutingTier(str, Enum):

    platform = "platform"
    property = "property"
    booking = "booking"


class AuditActionType(str, Enum):

    rule_created = "rule_created"
    rule_updated = "rule_updated"
    override_applied = "override_applied"
    booking_resolved = "booking_resolved"


class AuditRelatedType(str, Enum):

    platform_rule = "platform_rule"
    property_override = "property_override"
    booking_override = "booking_override"
    booking = "booking"


class DriftRecipient(str, Enum):

    owner = "owner"
    management = "management"

"""Effective routing resolution for a single booking.

Precedence is applied per field, narrowest tier wins:

    platform rule  ->  property override (non-null fields)  ->  booking override (all three)

The merged result must satisfy the same split invariant enforced when rules
are written; an inconsistent merge is rejected, never renormalised.

Money is split in the currency's minor unit with ROUND_HALF_EVEN:

    fee       = round(net * fee% / 100)
    remaining = net - fee
    owner     = round(remaining * owner% / 100)      (split_payout)
    management = remaining - owner                   (absorbs the residue)

so ``owner + management + fee == net`` holds exactly for every input.
Nothing here touches the database.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN
from typing import Any, Optional, Type

from ...core.errors import (
    InvalidPayoutAmount, InvalidPercentageSplit, RoutingError, UnknownRoutingType, UnresolvableSplit
)
from ...enum.routing_enum import DriftRecipient, RoutingTier, RoutingType
from ...schemas.routing.booking_routing_schemas import ResolvedRouting

HUNDRED = Decimal("100")
PERCENT_STEP = Decimal("0.01")

# ISO 4217 exponents that differ from the usual two decimals
CURRENCY_MINOR_UNITS = {
    "BIF": 0, "CLP": 0, "DJF": 0, "GNF": 0, "ISK": 0, "JPY": 0, "KMF": 0,
    "KRW": 0, "PYG": 0, "RWF": 0, "UGX": 0, "VND": 0, "VUV": 0, "XAF": 0,
    "XOF": 0, "XPF": 0,
    "BHD": 3, "IQD": 3, "JOD": 3, "KWD": 3, "LYD": 3, "OMR": 3, "TND": 3,
}


def parse_routing_type(value: Any) -> RoutingType:
    if isinstance(value, RoutingType):
        return value
    try:
        return RoutingType(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(t.value for t in RoutingType)
        raise UnknownRoutingType(
            f"Unknown routing type '{value}'. Expected one of: {allowed}",
            routing_type=str(value),
        )


def _as_percentage(value: Any, label: str, error_cls: Type[RoutingError]) -> Decimal:
    try:
        pct = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise error_cls(f"{label} must be a number, got '{value}'")
    if not pct.is_finite() or pct < 0 or pct > HUNDRED:
        raise error_cls(f"{label} must be between 0 and 100, got {value}")
    if pct != pct.quantize(PERCENT_STEP):
        raise error_cls(f"{label} allows at most two decimals, got {value}")
    return pct.quantize(PERCENT_STEP)


def check_percentage(value: Any, label: str) -> Decimal:
    return _as_percentage(value, label, InvalidPercentageSplit)


def check_split(
    owner_pct: Any,
    management_pct: Any,
    routing_type: Any,
    error_cls: Type[RoutingError] = InvalidPercentageSplit,
):
    """Validate an owner/management pair for a routing type.

    split_payout needs the two sides to total 100; a full_to_* type needs
    the side that receives nothing to be 0.
    """
    rtype = parse_routing_type(routing_type)
    owner = _as_percentage(owner_pct, "Owner percentage", error_cls)
    management = _as_percentage(management_pct, "Management percentage", error_cls)

    if rtype == RoutingType.split_payout and owner + management != HUNDRED:
        raise error_cls(
            f"Owner ({owner}%) and management ({management}%) must total 100% for split_payout, "
            f"got {owner + management}%",
            owner_percentage=str(owner), management_percentage=str(management),
        )
    if rtype == RoutingType.full_to_owner and management != 0:
        raise error_cls(
            f"Management percentage must be 0 for full_to_owner, got {management}%",
            management_percentage=str(management),
        )
    if rtype == RoutingType.full_to_management and owner != 0:
        raise error_cls(
            f"Owner percentage must be 0 for full_to_management, got {owner}%",
            owner_percentage=str(owner),
        )
    return owner, management, rtype


def minor_unit(currency: str) -> Decimal:
    exponent = CURRENCY_MINOR_UNITS.get(currency.upper(), 2)
    return Decimal(1).scaleb(-exponent)


def _round(amount: Decimal, unit: Decimal) -> Decimal:
    return amount.quantize(unit, rounding=ROUND_HALF_EVEN)


@dataclass(frozen=True)
class SplitAmounts:
    owner_amount: Decimal
    management_amount: Decimal
    platform_fee_amount: Decimal


def compute_split(
    net_payout_amount: Any,
    platform_fee_pct: Decimal,
    owner_pct: Decimal,
    management_pct: Decimal,
    routing_type: RoutingType,
    currency: str,
    drift_recipient: DriftRecipient = DriftRecipient.management,
) -> SplitAmounts:
    unit = minor_unit(currency)
    try:
        net = Decimal(str(net_payout_amount))
    except (InvalidOperation, ValueError):
        raise InvalidPayoutAmount(f"Net payout must be a number, got '{net_payout_amount}'")
    if not net.is_finite() or net < 0:
        raise InvalidPayoutAmount(f"Net payout must be zero or positive, got {net_payout_amount}")
    if net != net.quantize(unit):
        raise InvalidPayoutAmount(
            f"Net payout {net_payout_amount} is finer than the {currency} minor unit ({unit})")
    net = net.quantize(unit)

    fee = _round(net * platform_fee_pct / HUNDRED, unit)
    remaining = net - fee

    if routing_type == RoutingType.full_to_owner:
        owner, management = remaining, Decimal(0).quantize(unit)
    elif routing_type == RoutingType.full_to_management:
        owner, management = Decimal(0).quantize(unit), remaining
    elif DriftRecipient(drift_recipient) == DriftRecipient.owner:
        management = _round(remaining * management_pct / HUNDRED, unit)
        owner = remaining - management
    else:
        owner = _round(remaining * owner_pct / HUNDRED, unit)
        management = remaining - owner

    return SplitAmounts(owner_amount=owner, management_amount=management, platform_fee_amount=fee)


@dataclass(frozen=True)
class RuleCandidates:
    """Rows gathered by the rule store for one booking; any tier may be absent
    except the platform rule."""
    platform_rule: Any
    property_override: Optional[Any] = None
    booking_override: Optional[Any] = None


def merge_candidates(candidates: RuleCandidates):
    rule = candidates.platform_rule
    fields = {
        "owner_percentage": rule.default_owner_percentage,
        "management_percentage": rule.default_management_percentage,
        "routing_type": rule.routing_type,
        "platform_fee_percentage": rule.platform_fee_percentage,
    }
    provenance = {name: RoutingTier.platform.value for name in fields}

    override = candidates.property_override
    if override is not None:
        for name, value in (
            ("owner_percentage", override.override_owner_percentage),
            ("management_percentage", override.override_management_percentage),
            ("routing_type", override.override_routing_type),
        ):
            if value is not None:
                fields[name] = value
                provenance[name] = RoutingTier.property.value

    booking = candidates.booking_override
    if booking is not None:
        fields["owner_percentage"] = booking.actual_owner_percentage
        fields["management_percentage"] = booking.actual_management_percentage
        fields["routing_type"] = booking.actual_routing_type
        for name in ("owner_percentage", "management_percentage", "routing_type"):
            provenance[name] = RoutingTier.booking.value

    return fields, provenance


def resolve(
    candidates: RuleCandidates,
    booking_id: str,
    property_id: str,
    channel: str,
    net_payout_amount: Any,
    currency: str,
    drift_recipient: DriftRecipient = DriftRecipient.management,
) -> ResolvedRouting:
    fields, provenance = merge_candidates(candidates)

    rtype = parse_routing_type(fields["routing_type"])
    owner_pct, management_pct, rtype = check_split(
        fields["owner_percentage"], fields["management_percentage"], rtype,
        error_cls=UnresolvableSplit,
    )
    fee_pct = _as_percentage(
        fields["platform_fee_percentage"], "Platform fee percentage", UnresolvableSplit)
    # A full_to_* type pays the whole remainder to one side whatever the
    # receiving percentage was stored as; report what is actually paid
    if rtype == RoutingType.full_to_owner:
        owner_pct = HUNDRED.quantize(PERCENT_STEP)
    elif rtype == RoutingType.full_to_management:
        management_pct = HUNDRED.quantize(PERCENT_STEP)

    amounts = compute_split(
        net_payout_amount, fee_pct, owner_pct, management_pct, rtype,
        currency, drift_recipient,
    )

    rule = candidates.platform_rule
    return ResolvedRouting(
        booking_id=booking_id,
        property_id=property_id,
        channel=channel,
        currency=currency.upper(),
        net_payout_amount=amounts.owner_amount + amounts.management_amount + amounts.platform_fee_amount,
        owner_percentage=owner_pct,
        management_percentage=management_pct,
        routing_type=rtype.value,
        platform_fee_percentage=fee_pct,
        payment_method=rule.payment_method,
        owner_amount=amounts.owner_amount,
        management_amount=amounts.management_amount,
        platform_fee_amount=amounts.platform_fee_amount,
        platform_rule_id=rule.id,
        property_override_id=getattr(candidates.property_override, "id", None),
        booking_override_id=getattr(candidates.booking_override, "id", None),
        provenance=provenance,
    )

from shared.core.exceptions import AppException
from shared.utils.app_status_code import AppStatusCode


class RoutingError(AppException):
    """Base class for every revenue routing failure."""


# ----------------- Validation (caller fixes input, not retryable) -----------------

class InvalidPercentageSplit(RoutingError):
    status_code = AppStatusCode.ROUTING_INVALID_PERCENTAGE_SPLIT


class UnknownRoutingType(RoutingError):
    status_code = AppStatusCode.ROUTING_UNKNOWN_ROUTING_TYPE


class UnresolvableSplit(RoutingError):
    status_code = AppStatusCode.ROUTING_UNRESOLVABLE_SPLIT
    http_status = 422


class EmptyJustification(RoutingError):
    status_code = AppStatusCode.ROUTING_EMPTY_JUSTIFICATION


class InvalidPayoutAmount(RoutingError):
    status_code = AppStatusCode.ROUTING_INVALID_PAYOUT_AMOUNT


class InvalidIdentifier(RoutingError):
    status_code = AppStatusCode.ROUTING_INVALID_IDENTIFIER


class RuleNotFound(RoutingError):
    status_code = AppStatusCode.ROUTING_RULE_NOT_FOUND
    http_status = 404


class PropertyOverrideConflict(RoutingError):
    status_code = AppStatusCode.ROUTING_PROPERTY_OVERRIDE_CONFLICT
    http_status = 409


class PlatformRuleConflict(RoutingError):
    status_code = AppStatusCode.ROUTING_PLATFORM_RULE_CONFLICT
    http_status = 409


class RuleInUse(RoutingError):
    status_code = AppStatusCode.ROUTING_RULE_IN_USE
    http_status = 409


# ----------------- Concurrency (refetch and reapply) -----------------

class StaleRuleVersion(RoutingError):
    status_code = AppStatusCode.ROUTING_STALE_RULE_VERSION
    http_status = 409
    retryable = True


class ConcurrentBookingOverride(RoutingError):
    status_code = AppStatusCode.ROUTING_CONCURRENT_BOOKING_OVERRIDE
    http_status = 409
    retryable = True


# ----------------- Infrastructure -----------------

class AuditWriteFailed(RoutingError):
    status_code = AppStatusCode.ROUTING_AUDIT_WRITE_FAILED
    http_status = 503

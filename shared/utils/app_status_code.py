class AppStatusCode:
    # Success
    DATA_RETRIEVED_SUCCESSFULLY = "100"
    CREATED_SUCCESSFULLY = "102"
    UPDATED_SUCCESSFULLY = "103"

    # Generic failures
    OPERATION_FAILED = "200"
    INVALID_INPUT = "202"

    # Revenue routing
    ROUTING_INVALID_PERCENTAGE_SPLIT = "400"
    ROUTING_UNKNOWN_ROUTING_TYPE = "401"
    ROUTING_UNRESOLVABLE_SPLIT = "402"
    ROUTING_PROPERTY_OVERRIDE_CONFLICT = "403"
    ROUTING_PLATFORM_RULE_CONFLICT = "404"
    ROUTING_RULE_IN_USE = "405"
    ROUTING_RULE_NOT_FOUND = "406"
    ROUTING_EMPTY_JUSTIFICATION = "407"
    ROUTING_INVALID_PAYOUT_AMOUNT = "408"
    ROUTING_STALE_RULE_VERSION = "409"
    ROUTING_AUDIT_WRITE_FAILED = "410"
    ROUTING_CONCURRENT_BOOKING_OVERRIDE = "411"
    ROUTING_INVALID_IDENTIFIER = "412"

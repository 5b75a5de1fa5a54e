from .platform_routing_rules import PlatformRoutingRule
from .property_platform_rules import PropertyPlatformRule
from .booking_platform_routing import BookingPlatformRouting
from .routing_audit_logs import RoutingAuditLog

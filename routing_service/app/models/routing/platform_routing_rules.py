import uuid
from sqlalchemy import Boolean, Column, DateTime, Index, Integer, Numeric, String, Text, Uuid, func, text
from sqlalchemy.orm import relationship
from shared.core.database import Base


class PlatformRoutingRule(Base):
    __tablename__ = "platform_routing_rules"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    platform_name = Column(String(32), nullable=False, index=True)  # airbnb|booking_com|vrbo|direct...
    platform_display_name = Column(String(128), nullable=False)
    default_owner_percentage = Column(Numeric(5, 2), nullable=False)
    default_management_percentage = Column(Numeric(5, 2), nullable=False)
    # split_payout|full_to_owner|full_to_management
    routing_type = Column(String(24), nullable=False, default="split_payout")
    payment_method = Column(String(24), default="automatic")  # hint only
    platform_fee_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    supports_split_payout = Column(Boolean, nullable=False, default=False)
    admin_notes = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True),
                        server_default=func.now(), onupdate=func.now())

    # Stale writes fail at flush instead of overwriting a concurrent edit
    __mapper_args__ = {"version_id_col": version}
    # One active rule per channel, enforced by the database as well
    __table_args__ = (
        Index("uq_active_platform_name", "platform_name", unique=True,
              postgresql_where=text("is_active"), sqlite_where=text("is_active")),
    )

    property_overrides = relationship(
        "PropertyPlatformRule", back_populates="platform_rule")

import uuid
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, Uuid, func, text
from sqlalchemy.orm import relationship
from shared.core.database import Base


class PropertyPlatformRule(Base):
    __tablename__ = "property_platform_rules"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    property_id = Column(String(64), nullable=False, index=True)
    platform_rule_id = Column(Uuid(as_uuid=True), ForeignKey(
        "platform_routing_rules.id"), nullable=False)
    # NULL means "inherit from the platform rule"
    override_owner_percentage = Column(Numeric(5, 2))
    override_management_percentage = Column(Numeric(5, 2))
    override_routing_type = Column(String(24))
    special_instructions = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True),
                        server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        Index("uq_active_property_platform_rule", "property_id", "platform_rule_id", unique=True,
              postgresql_where=text("is_active"), sqlite_where=text("is_active")),
    )

    platform_rule = relationship(
        "PlatformRoutingRule", back_populates="property_overrides")

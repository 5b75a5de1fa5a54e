import uuid
from sqlalchemy import Boolean, Column, DateTime, Index, Numeric, String, Text, Uuid, func, text
from shared.core.database import Base


class BookingPlatformRouting(Base):
    """Manual per-booking routing exception.

    Rows are never edited: a newer override for the same booking flips the
    previous row to inactive and stamps ``superseded_at``.
    """
    __tablename__ = "booking_platform_routing"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    booking_id = Column(String(64), nullable=False, index=True)
    actual_owner_percentage = Column(Numeric(5, 2), nullable=False)
    actual_management_percentage = Column(Numeric(5, 2), nullable=False)
    actual_routing_type = Column(String(24), nullable=False)
    override_reason = Column(Text, nullable=False)
    applied_by = Column(String(128))
    is_active = Column(Boolean, nullable=False, default=True)
    superseded_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("uq_active_booking_override", "booking_id", unique=True,
              postgresql_where=text("is_active"), sqlite_where=text("is_active")),
    )

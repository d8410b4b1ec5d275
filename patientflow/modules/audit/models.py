import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, TIMESTAMP, text
from patientflow.core.base import Base, TimestampedTenantMixin

class AuditEvent(Base, TimestampedTenantMixin):
    # who / tenant
    actor_user_id: Mapped[uuid.UUID] = mapped_column()
    actor_role: Mapped[str | None] = mapped_column(String(16), nullable=True)
    # What happened
    action: Mapped[str] = mapped_column(String(24))  # read | write
    resource_type: Mapped[str] = mapped_column(String(48))  # triage_summary | visit
    resource_id: Mapped[str] = mapped_column(String(64))
    purpose: Mapped[str | None] = mapped_column(String(64), nullable=True)
    success: Mapped[bool] = mapped_column(default=True)
    occurred_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), server_default=text("CURRENT_TIMESTAMP"))

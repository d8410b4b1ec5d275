import enum
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, JSON, TIMESTAMP, Integer, Index, CheckConstraint, ForeignKey, text
from patientflow.core.base import Base, TimestampedTenantMixin


class VisitStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    IN_TRIAGE = "in_triage"
    WAITING = "waiting"
    WITH_DOCTOR = "with_doctor"
    COMPLETED = "completed"
    REJECTED = "rejected"


ACTIVE_STATUSES = frozenset({
    VisitStatus.PENDING, VisitStatus.APPROVED, VisitStatus.IN_TRIAGE,
    VisitStatus.WAITING, VisitStatus.WITH_DOCTOR,
})
TERMINAL_STATUSES = frozenset({VisitStatus.COMPLETED, VisitStatus.REJECTED})

_ACTIVE_SQL = "status IN ('pending', 'approved', 'in_triage', 'waiting', 'with_doctor')"


# The database numbers tickets (SERIAL on Postgres, rowid on SQLite), so two
# joins in flight at once never draw the same queue_seq.
class QueueTicket(Base):
    __tablename__ = "queueticket"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[uuid.UUID] = mapped_column(index=True)
    issued_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), server_default=text("CURRENT_TIMESTAMP"))


# One record per patient visit; terminal records are kept as history, never deleted.
class VisitRecord(Base, TimestampedTenantMixin):
    patient_id: Mapped[uuid.UUID] = mapped_column(index=True)
    status: Mapped[str] = mapped_column(String(16), default=VisitStatus.PENDING.value)

    # set once, at approval
    assigned_doctor_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    room_number: Mapped[str | None] = mapped_column(String(32), nullable=True)

    priority: Mapped[int] = mapped_column(Integer, default=3)  # 1 = highest, 5 = lowest; not used for ordering

    # insertion order, issued by QueueTicket; tie-break for equal request_time
    queue_seq: Mapped[int] = mapped_column(Integer, ForeignKey("queueticket.id"), unique=True)

    request_time: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))
    approval_time: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    triage_start_time: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    triage_end_time: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    consultation_start_time: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    consultation_end_time: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    symptom_history: Mapped[list] = mapped_column(JSON, default=list)  # [{"question","answer","timestamp"}]
    triage_summary: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("priority BETWEEN 1 AND 5", name="ck_visitrecord_priority"),
        Index("ix_visitrecord_status_request_time", "status", "request_time"),
        Index("ix_visitrecord_doctor_status", "assigned_doctor_id", "status"),
        # at most one active visit per patient, even under racing inserts
        Index(
            "uq_visitrecord_active_patient", "org_id", "patient_id",
            unique=True,
            postgresql_where=text(_ACTIVE_SQL),
            sqlite_where=text(_ACTIVE_SQL),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status in {s.value for s in ACTIVE_STATUSES}

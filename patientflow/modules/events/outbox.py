import uuid
import asyncio
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import TIMESTAMP, Index, String, Integer, Text, JSON, select
from sqlalchemy.ext.asyncio import AsyncSession

from patientflow.core.base import Base, TimestampedTenantMixin
from patientflow.core.config import settings
from patientflow.core.db import SessionLocal
from patientflow.platform.provider_registry import registry

log = logging.getLogger("event.outbox")

TOPIC = "patientflow.events"
MAX_BACKOFF_SECONDS = 60


# Written in the same transaction as the visit change it describes; the relay
# delivers it afterwards.
class VisitEvent(Base, TimestampedTenantMixin):
    visit_id: Mapped[uuid.UUID] = mapped_column(index=True)
    event_type: Mapped[str] = mapped_column(String(64))
    from_status: Mapped[str | None] = mapped_column(String(16), nullable=True)  # None when the visit is created
    to_status: Mapped[str] = mapped_column(String(16))
    actor_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    details: Mapped[dict] = mapped_column(JSON, default=dict)
    occurred_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))

    delivery_status: Mapped[str] = mapped_column(String(16), default="pending")  # pending | processing | sent
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    next_attempt_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_visitevent_delivery_due", "delivery_status", "next_attempt_at"),
    )

    def as_message(self) -> dict:
        return {
            "event_id": str(self.id),
            "event_type": self.event_type,
            "org_id": str(self.org_id),
            "visit_id": str(self.visit_id),
            "from": self.from_status,
            "to": self.to_status,
            "actor_id": str(self.actor_id) if self.actor_id else None,
            "details": self.details,
            "occurred_at": self.occurred_at.isoformat(),
        }


def retry_delay(attempts: int) -> timedelta:
    # 2, 4, 8, 16, 32, then 60s
    return timedelta(seconds=min(MAX_BACKOFF_SECONDS, 2 ** min(attempts, 6)))


class OutboxRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, event: VisitEvent) -> VisitEvent:
        self.session.add(event)
        await self.session.flush()
        return event

    async def claim_due(self, now: datetime, limit: int = 50) -> list[VisitEvent]:
        # FOR UPDATE SKIP LOCKED lets several relays share the table on Postgres
        q = (
            select(VisitEvent)
            .where(
                VisitEvent.deleted_at.is_(None),
                VisitEvent.delivery_status == "pending",
                VisitEvent.next_attempt_at <= now,
            )
            .order_by(VisitEvent.occurred_at.asc(), VisitEvent.created_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        rows = list((await self.session.execute(q)).scalars().all())
        for ev in rows:
            ev.delivery_status = "processing"
        await self.session.flush()
        return rows

    async def mark_sent(self, ev: VisitEvent):
        ev.delivery_status = "sent"
        ev.last_error = None
        await self.session.flush()

    async def mark_failed(self, ev: VisitEvent, error: str, now: datetime):
        ev.attempts = (ev.attempts or 0) + 1
        ev.delivery_status = "pending"
        ev.next_attempt_at = now + retry_delay(ev.attempts)
        ev.last_error = error[:2000]
        await self.session.flush()


class OutboxService:
    def __init__(self, session: AsyncSession):
        self.repo = OutboxRepository(session)

    async def record(self, visit, event_type: str, *, from_status: str | None, occurred_at: datetime,
                     actor_id: uuid.UUID | None = None, details: dict | None = None) -> VisitEvent:
        """Stage an event for ``visit`` in its current state; the caller commits."""
        return await self.repo.add(VisitEvent(
            org_id=visit.org_id,
            visit_id=visit.id,
            event_type=event_type,
            from_status=from_status,
            to_status=visit.status,
            actor_id=actor_id,
            details=details or {},
            occurred_at=occurred_at,
            delivery_status="pending",
            attempts=0,
            next_attempt_at=occurred_at,
        ))


async def relay_once(session: AsyncSession, bus, limit: int = 50, now: datetime | None = None) -> int:
    """Publish one claimed batch; returns how many events were claimed."""
    now = now or datetime.now(timezone.utc)
    repo = OutboxRepository(session)
    batch = await repo.claim_due(now, limit=limit)
    for ev in batch:
        try:
            await bus.publish(topic=TOPIC, key=str(ev.visit_id), value=ev.as_message(),
                              headers={"event_type": ev.event_type})
            await repo.mark_sent(ev)
        except Exception as ex:  # noqa
            log.exception(f"Publish of {ev.event_type} for visit {ev.visit_id} failed")
            await repo.mark_failed(ev, str(ex), now)
    await session.commit()
    return len(batch)

# ---- Background relay ----

async def run_outbox_relay(poll_interval_seconds: float | None = None):
    poll = poll_interval_seconds or settings.OUTBOX_POLL_SECONDS
    bus = registry.event_bus()
    log.info("Outbox relay started with bus=%s", bus.__class__.__name__)
    try:
        while True:
            async with SessionLocal() as session:
                try:
                    claimed = await relay_once(session, bus)
                except Exception:
                    log.exception("Outbox relay iteration failed")
                    await session.rollback()
                    claimed = 0
            await asyncio.sleep(0 if claimed else poll)
    except asyncio.CancelledError:
        log.info("Outbox relay cancelled; shutting down")
        raise

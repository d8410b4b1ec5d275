import uuid
import logging
from datetime import datetime, timezone
from typing import Callable, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from patientflow.core.errors import (
    AlreadyProcessed, Conflict, Forbidden, InvalidState, InvalidTransition, NotFound, ValidationFailed,
)
from patientflow.core.security import Principal
from patientflow.modules.audit.service import AuditService
from patientflow.modules.events.outbox import OutboxService
from patientflow.modules.triage import engine
from patientflow.modules.visits import state_machine
from patientflow.modules.visits.models import VisitRecord, VisitStatus
from patientflow.modules.visits.ordering import PositionService
from patientflow.modules.visits.repository import VisitRepository
from patientflow.modules.visits.state_machine import Actor

logger = logging.getLogger(__name__)

S = VisitStatus

CONSULTATION_EVENTS = {
    S.WITH_DOCTOR.value: "CONSULTATION_STARTED",
    S.COMPLETED.value: "VISIT_COMPLETED",
}

def _now() -> datetime:
    return datetime.now(timezone.utc)

class VisitLifecycleService:
    """Coordinates visit records through the queue: who may do what, in which order.

    Every operation checks the caller's role first, then ownership, then the
    state machine, and finally writes through a status+version compare-and-swap
    so the loser of two racing requests gets ``AlreadyProcessed``.
    """
    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = _now):
        self.session = session
        self.clock = clock
        self.repo = VisitRepository(session)
        self.positions = PositionService(session)
        self.outbox = OutboxService(session)
        self.audit = AuditService(session)

    # ---- helpers ----
    @staticmethod
    def _require_role(principal: Principal, role: Actor):
        if not principal.has_role(role.value):
            raise Forbidden(f"{role.value} role required")

    async def _load(self, principal: Principal, visit_id: uuid.UUID) -> VisitRecord:
        obj = await self.repo.get(principal.org_id, visit_id)
        if not obj:
            raise NotFound("Visit not found")
        return obj

    async def _write(self, obj: VisitRecord, principal: Principal, event_type: str, details: dict, **changes) -> VisitRecord:
        """Apply ``changes`` atomically together with the outbox event, then commit."""
        before = obj.status
        updated = await self.repo.compare_and_set(obj, **changes)
        if updated is None:
            await self.session.rollback()
            logger.warning(f"visit {obj.id} changed concurrently; dropping {event_type}")
            raise AlreadyProcessed("Visit was already processed by another request")
        await self.outbox.record(updated, event_type, from_status=before, occurred_at=self.clock(),
                                 actor_id=principal.user_id, details=details)
        await self.session.commit()
        return updated

    async def _transition(self, obj: VisitRecord, target: VisitStatus, actor: Actor, principal: Principal,
                          event_type: str, details: dict | None = None, **extra) -> VisitRecord:
        before = obj.status
        try:
            changes = state_machine.apply(before, target.value, actor, self.clock())
        except (InvalidTransition, Forbidden):
            logger.warning(f"visit {obj.id} rejected {before} -> {target.value} by {actor.value} {principal.user_id}")
            raise
        updated = await self._write(obj, principal, event_type, details or {}, **changes, **extra)
        logger.info(f"visit {obj.id} {before} -> {updated.status} by {actor.value} {principal.user_id}")
        return updated

    # ---- patient ----
    async def join_queue(self, principal: Principal) -> VisitRecord:
        self._require_role(principal, Actor.PATIENT)
        if await self.repo.find_active_for_patient(principal.org_id, principal.user_id):
            raise Conflict("You already have an active queue request")
        now = self.clock()
        try:
            obj = await self.repo.create(
                principal.org_id,
                patient_id=principal.user_id,
                status=S.PENDING.value,
                request_time=now,
                symptom_history=[],
            )
            await self.outbox.record(obj, "VISIT_REQUESTED", from_status=None, occurred_at=now,
                                     actor_id=principal.user_id)
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            # only the one-active-visit index makes this a conflict
            if await self.repo.find_active_for_patient(principal.org_id, principal.user_id):
                raise Conflict("You already have an active queue request")
            raise
        await self.session.refresh(obj)
        logger.info(f"visit {obj.id} created for patient {principal.user_id} (seq {obj.queue_seq})")
        return obj

    async def get_status(self, principal: Principal) -> tuple[VisitRecord, int | None]:
        self._require_role(principal, Actor.PATIENT)
        obj = await self.repo.find_active_for_patient(principal.org_id, principal.user_id)
        if not obj:
            raise NotFound("No active queue entry found")
        return obj, await self.positions.position(obj)

    async def history(self, principal: Principal, limit: int = 50, offset: int = 0) -> Sequence[VisitRecord]:
        self._require_role(principal, Actor.PATIENT)
        return await self.repo.list_for_patient(principal.org_id, principal.user_id, limit, offset)

    # ---- staff ----
    async def list_pending(self, principal: Principal) -> Sequence[VisitRecord]:
        return await self.list_by_status(principal, S.PENDING)

    async def list_by_status(self, principal: Principal, status: VisitStatus) -> Sequence[VisitRecord]:
        self._require_role(principal, Actor.STAFF)
        return await self.repo.list_by_status(principal.org_id, [status.value])

    async def process(self, principal: Principal, visit_id: uuid.UUID, decision: str,
                      room_number: str | None = None, doctor_id: uuid.UUID | None = None) -> VisitRecord:
        self._require_role(principal, Actor.STAFF)
        if decision not in (S.APPROVED.value, S.REJECTED.value):
            raise ValidationFailed("decision must be 'approved' or 'rejected'")
        if decision == S.APPROVED.value and (not room_number or not doctor_id):
            raise ValidationFailed("Room number and doctor are required for approval")
        obj = await self._load(principal, visit_id)
        if decision == S.APPROVED.value:
            return await self._transition(
                obj, S.APPROVED, Actor.STAFF, principal, "VISIT_APPROVED",
                {"doctor_id": str(doctor_id), "room_number": room_number},
                room_number=room_number, assigned_doctor_id=doctor_id,
            )
        return await self._transition(obj, S.REJECTED, Actor.STAFF, principal, "VISIT_REJECTED")

    async def update_notes(self, principal: Principal, visit_id: uuid.UUID, notes: str | None) -> VisitRecord:
        self._require_role(principal, Actor.STAFF)
        obj = await self._load(principal, visit_id)
        return await self._write(obj, principal, "VISIT_NOTES_UPDATED", {}, notes=notes)

    async def update_priority(self, principal: Principal, visit_id: uuid.UUID, priority: int) -> VisitRecord:
        self._require_role(principal, Actor.STAFF)
        if not 1 <= priority <= 5:
            raise ValidationFailed("priority must be between 1 (highest) and 5 (lowest)")
        obj = await self._load(principal, visit_id)
        if not obj.is_active:
            raise InvalidState(f"cannot reprioritise a {obj.status} visit")
        return await self._write(obj, principal, "VISIT_PRIORITY_UPDATED", {"priority": priority}, priority=priority)

    # ---- doctor ----
    async def doctor_queue(self, principal: Principal) -> Sequence[VisitRecord]:
        self._require_role(principal, Actor.DOCTOR)
        return await self.repo.list_by_status(
            principal.org_id, [S.WAITING.value, S.WITH_DOCTOR.value], doctor_id=principal.user_id,
        )

    async def update_consultation_status(self, principal: Principal, visit_id: uuid.UUID, status: str) -> VisitRecord:
        self._require_role(principal, Actor.DOCTOR)
        if status not in (S.WAITING.value, S.WITH_DOCTOR.value, S.COMPLETED.value):
            raise ValidationFailed("Invalid status")
        obj = await self._load(principal, visit_id)
        if obj.assigned_doctor_id != principal.user_id:
            raise Forbidden("Visit is assigned to another doctor")
        return await self._transition(
            obj, S(status), Actor.DOCTOR, principal, CONSULTATION_EVENTS.get(status, "CONSULTATION_UPDATED"),
        )

    # ---- triage ----
    async def _load_owned(self, principal: Principal, visit_id: uuid.UUID) -> VisitRecord:
        self._require_role(principal, Actor.PATIENT)
        obj = await self._load(principal, visit_id)
        if obj.patient_id != principal.user_id:
            raise Forbidden("Visit belongs to another patient")
        return obj

    async def start_triage(self, principal: Principal, visit_id: uuid.UUID) -> engine.Question:
        obj = await self._load_owned(principal, visit_id)
        await self._transition(obj, S.IN_TRIAGE, Actor.PATIENT, principal, "TRIAGE_STARTED", symptom_history=[])
        return engine.start_session()

    async def submit_triage_answer(self, principal: Principal, visit_id: uuid.UUID,
                                   answer: str) -> engine.Question | engine.TriageSummary:
        obj = await self._load_owned(principal, visit_id)
        if obj.status != S.IN_TRIAGE.value:
            raise InvalidState("Active triage session not found")
        now = self.clock()
        history, step = engine.submit(list(obj.symptom_history or []), answer, now)
        if isinstance(step, engine.TriageSummary):
            # history, status, end time and summary land in one write
            await self._transition(
                obj, S.WAITING, Actor.PATIENT, principal, "TRIAGE_COMPLETED",
                {"answers": len(history)},
                symptom_history=history, triage_summary=step.as_mapping(),
            )
            return step
        state_machine.check(obj.status, S.IN_TRIAGE.value, Actor.PATIENT)
        await self._write(obj, principal, "TRIAGE_ANSWERED", {"answers": len(history)}, symptom_history=history)
        logger.debug(f"visit {obj.id} triage answer {len(history)} recorded")
        return step

    async def get_triage_summary(self, principal: Principal, visit_id: uuid.UUID) -> tuple[list[dict], dict | None]:
        obj = await self._load(principal, visit_id)
        if principal.has_role(Actor.DOCTOR.value):
            role = Actor.DOCTOR.value
        elif principal.has_role(Actor.STAFF.value):
            role = Actor.STAFF.value
        elif principal.has_role(Actor.PATIENT.value) and obj.patient_id == principal.user_id:
            role = Actor.PATIENT.value
        else:
            await self.audit.log(principal.org_id, principal.user_id, "read", "triage_summary", str(obj.id),
                                 purpose="triage_review", success=False)
            await self.session.commit()
            raise Forbidden("Not authorized to view this summary")
        await self.audit.log(principal.org_id, principal.user_id, "read", "triage_summary", str(obj.id),
                             purpose="triage_review", actor_role=role)
        await self.session.commit()
        return list(obj.symptom_history or []), obj.triage_summary

import uuid
from datetime import datetime
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, and_, or_
from patientflow.modules.visits.models import QueueTicket, VisitRecord, ACTIVE_STATUSES

_ACTIVE = [s.value for s in ACTIVE_STATUSES]

class VisitRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def issue_queue_seq(self, org_id: uuid.UUID) -> int:
        ticket = QueueTicket(org_id=org_id)
        self.session.add(ticket)
        await self.session.flush()
        return ticket.id

    async def create(self, org_id: uuid.UUID, **data) -> VisitRecord:
        obj = VisitRecord(org_id=org_id, queue_seq=await self.issue_queue_seq(org_id), **data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get(self, org_id: uuid.UUID, visit_id: uuid.UUID, *, fresh: bool = False) -> VisitRecord | None:
        q = select(VisitRecord).where(
            VisitRecord.id == visit_id,
            VisitRecord.org_id == org_id,
            VisitRecord.deleted_at.is_(None),
        )
        if fresh:
            q = q.execution_options(populate_existing=True)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def find_active_for_patient(self, org_id: uuid.UUID, patient_id: uuid.UUID) -> VisitRecord | None:
        q = select(VisitRecord).where(
            VisitRecord.org_id == org_id,
            VisitRecord.patient_id == patient_id,
            VisitRecord.status.in_(_ACTIVE),
            VisitRecord.deleted_at.is_(None),
        ).order_by(VisitRecord.queue_seq.desc()).limit(1)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def list_for_patient(self, org_id: uuid.UUID, patient_id: uuid.UUID, limit: int = 50, offset: int = 0) -> Sequence[VisitRecord]:
        q = select(VisitRecord).where(
            VisitRecord.org_id == org_id,
            VisitRecord.patient_id == patient_id,
            VisitRecord.deleted_at.is_(None),
        ).order_by(VisitRecord.queue_seq.desc()).limit(limit).offset(offset)
        res = await self.session.execute(q)
        return res.scalars().all()

    async def list_by_status(self, org_id: uuid.UUID, statuses: list[str], *, doctor_id: uuid.UUID | None = None, limit: int | None = None) -> Sequence[VisitRecord]:
        cond = [VisitRecord.org_id == org_id, VisitRecord.status.in_(statuses), VisitRecord.deleted_at.is_(None)]
        if doctor_id:
            cond.append(VisitRecord.assigned_doctor_id == doctor_id)
        q = select(VisitRecord).where(and_(*cond)).order_by(VisitRecord.request_time.asc(), VisitRecord.queue_seq.asc())
        if limit:
            q = q.limit(limit)
        res = await self.session.execute(q)
        return res.scalars().all()

    async def count_ahead(self, org_id: uuid.UUID, status: str, request_time: datetime, queue_seq: int) -> int:
        # same cohort, strictly earlier by (request_time, queue_seq)
        q = select(func.count()).select_from(VisitRecord).where(
            VisitRecord.org_id == org_id,
            VisitRecord.status == status,
            VisitRecord.deleted_at.is_(None),
            or_(
                VisitRecord.request_time < request_time,
                and_(VisitRecord.request_time == request_time, VisitRecord.queue_seq < queue_seq),
            ),
        )
        res = await self.session.execute(q)
        return int(res.scalar_one())

    async def compare_and_set(self, obj: VisitRecord, **changes) -> VisitRecord | None:
        """Write ``changes`` only if the row still has the status and version ``obj`` was read with.

        Returns the refreshed record, or None when another writer got there first.
        """
        q = (
            update(VisitRecord)
            .where(
                VisitRecord.id == obj.id,
                VisitRecord.org_id == obj.org_id,
                VisitRecord.status == obj.status,
                VisitRecord.version == obj.version,
            )
            .values(**changes, version=VisitRecord.version + 1)
            .execution_options(synchronize_session=False)
        )
        res = await self.session.execute(q)
        if res.rowcount != 1:
            return None
        return await self.get(obj.org_id, obj.id, fresh=True)

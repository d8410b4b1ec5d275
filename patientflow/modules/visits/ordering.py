from sqlalchemy.ext.asyncio import AsyncSession
from patientflow.modules.visits.models import VisitRecord, VisitStatus
from patientflow.modules.visits.repository import VisitRepository

class PositionService:
    """Rank of a record inside its status cohort, first come first served.

    Priority is stored on the record but deliberately not part of the key.
    """
    def __init__(self, session: AsyncSession):
        self.repo = VisitRepository(session)

    async def position(self, obj: VisitRecord) -> int | None:
        if obj.status == VisitStatus.PENDING.value:
            return None
        ahead = await self.repo.count_ahead(obj.org_id, obj.status, obj.request_time, obj.queue_seq)
        return ahead + 1

import uuid
from typing import Sequence
from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession
from patientflow.core.errors import Forbidden
from patientflow.core.security import Principal
from patientflow.modules.audit.models import AuditEvent

class AuditService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def log(self,
                  org_id: uuid.UUID,
                  actor_user_id: uuid.UUID,
                  action: str,
                  resource_type: str,
                  resource_id: str,
                  purpose: str | None = None,
                  actor_role: str | None = None,
                  success: bool = True) -> AuditEvent:
        # caller owns the transaction so the audit row commits with the access it records
        ev = AuditEvent(
            org_id=org_id,
            actor_user_id=actor_user_id,
            actor_role=actor_role,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            purpose=purpose,
            success=success,
        )
        self.session.add(ev)
        await self.session.flush()
        return ev

    async def list(self, principal: Principal, limit: int = 50) -> Sequence[AuditEvent]:
        if not principal.has_role("staff"):
            raise Forbidden("audit log is restricted to staff")
        q = select(AuditEvent).where(
            AuditEvent.org_id == principal.org_id,
            AuditEvent.deleted_at.is_(None),
        ).order_by(desc(AuditEvent.occurred_at), desc(AuditEvent.created_at)).limit(limit)
        res = await self.session.execute(q)
        return res.scalars().all()

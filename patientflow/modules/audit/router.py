from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from patientflow.core.db import get_session
from patientflow.core.security import get_principal, Principal
from patientflow.modules.audit.service import AuditService

router = APIRouter()

@router.get("/audit")
async def list_audit(
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
    limit: int = Query(50, ge=1, le=200),
):
    rows = await AuditService(session).list(principal, limit)
    # Return raw dicts for simplicity
    return [
        {
            "id": row.id,
            "org_id": row.org_id,
            "actor_user_id": row.actor_user_id,
            "actor_role": row.actor_role,
            "action": row.action,
            "resource_type": row.resource_type,
            "resource_id": row.resource_id,
            "purpose": row.purpose,
            "success": row.success,
            "occurred_at": row.occurred_at,
        }
        for row in rows
    ]

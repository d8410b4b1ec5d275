import uuid
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from patientflow.core.db import get_session
from patientflow.core.security import get_principal, Principal
from patientflow.modules.visits.models import VisitStatus
from patientflow.modules.visits.schemas import (
    VisitOut, VisitStatusOut, ProcessDecision, ConsultationStatusChange, NotesUpdate, PriorityUpdate,
)
from patientflow.modules.visits.service import VisitLifecycleService

router = APIRouter()

def svc(session: AsyncSession = Depends(get_session)) -> VisitLifecycleService:
    return VisitLifecycleService(session)

# ---- Patient ----

@router.post("/queue", response_model=VisitOut, status_code=status.HTTP_201_CREATED)
async def join_queue(
    principal: Principal = Depends(get_principal),
    service: VisitLifecycleService = Depends(svc),
):
    return await service.join_queue(principal)

@router.get("/status", response_model=VisitStatusOut)
async def get_status(
    principal: Principal = Depends(get_principal),
    service: VisitLifecycleService = Depends(svc),
):
    obj, position = await service.get_status(principal)
    return VisitStatusOut(visit=VisitOut.model_validate(obj), position=position)

@router.get("/history", response_model=list[VisitOut])
async def visit_history(
    limit: int = Query(50, ge=1, le=200), offset: int = Query(0, ge=0),
    principal: Principal = Depends(get_principal),
    service: VisitLifecycleService = Depends(svc),
):
    return await service.history(principal, limit, offset)

# ---- Staff ----

@router.get("/pending", response_model=list[VisitOut])
async def list_pending(
    principal: Principal = Depends(get_principal),
    service: VisitLifecycleService = Depends(svc),
):
    return await service.list_pending(principal)

@router.get("", response_model=list[VisitOut])
async def list_by_status(
    status: VisitStatus = Query(...),
    principal: Principal = Depends(get_principal),
    service: VisitLifecycleService = Depends(svc),
):
    return await service.list_by_status(principal, status)

@router.put("/{visit_id}/process", response_model=VisitOut)
async def process_visit(
    visit_id: uuid.UUID,
    payload: ProcessDecision,
    principal: Principal = Depends(get_principal),
    service: VisitLifecycleService = Depends(svc),
):
    return await service.process(principal, visit_id, payload.decision, payload.room_number, payload.doctor_id)

@router.patch("/{visit_id}/notes", response_model=VisitOut)
async def update_notes(
    visit_id: uuid.UUID,
    payload: NotesUpdate,
    principal: Principal = Depends(get_principal),
    service: VisitLifecycleService = Depends(svc),
):
    return await service.update_notes(principal, visit_id, payload.notes)

@router.patch("/{visit_id}/priority", response_model=VisitOut)
async def update_priority(
    visit_id: uuid.UUID,
    payload: PriorityUpdate,
    principal: Principal = Depends(get_principal),
    service: VisitLifecycleService = Depends(svc),
):
    return await service.update_priority(principal, visit_id, payload.priority)

# ---- Doctor ----

@router.get("/doctor-queue", response_model=list[VisitOut])
async def doctor_queue(
    principal: Principal = Depends(get_principal),
    service: VisitLifecycleService = Depends(svc),
):
    return await service.doctor_queue(principal)

@router.put("/{visit_id}/consultation", response_model=VisitOut)
async def update_consultation_status(
    visit_id: uuid.UUID,
    payload: ConsultationStatusChange,
    principal: Principal = Depends(get_principal),
    service: VisitLifecycleService = Depends(svc),
):
    return await service.update_consultation_status(principal, visit_id, payload.status)

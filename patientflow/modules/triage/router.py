import uuid
from fastapi import APIRouter, Depends
from patientflow.core.security import get_principal, Principal
from patientflow.modules.triage.engine import TriageSummary
from patientflow.modules.triage.schemas import TriageStartOut, TriageAnswer, TriageStepOut, TriageSummaryOut
from patientflow.modules.visits.router import svc
from patientflow.modules.visits.service import VisitLifecycleService

router = APIRouter()

@router.post("/triage/{visit_id}/start", response_model=TriageStartOut)
async def start_triage(
    visit_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    service: VisitLifecycleService = Depends(svc),
):
    question = await service.start_triage(principal, visit_id)
    return TriageStartOut(question=question)

@router.post("/triage/{visit_id}/respond", response_model=TriageStepOut)
async def respond(
    visit_id: uuid.UUID,
    payload: TriageAnswer,
    principal: Principal = Depends(get_principal),
    service: VisitLifecycleService = Depends(svc),
):
    step = await service.submit_triage_answer(principal, visit_id, payload.answer)
    if isinstance(step, TriageSummary):
        return TriageStepOut(question=None, is_complete=True, summary=step.as_mapping())
    return TriageStepOut(question=step, is_complete=False)

@router.get("/triage/{visit_id}/summary", response_model=TriageSummaryOut)
async def get_summary(
    visit_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    service: VisitLifecycleService = Depends(svc),
):
    symptoms, summary = await service.get_triage_summary(principal, visit_id)
    return TriageSummaryOut(symptoms=symptoms, summary=summary)

from fastapi import APIRouter
from patientflow.modules.visits.router import router as visits_router
from patientflow.modules.triage.router import router as triage_router
from patientflow.modules.audit.router import router as audit_router

api_router = APIRouter()
api_router.include_router(visits_router, prefix="/visits", tags=["visits"])
api_router.include_router(triage_router, tags=["triage"])
api_router.include_router(audit_router, tags=["audit"])

@api_router.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}

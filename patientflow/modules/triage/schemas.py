from pydantic import BaseModel, Field
from patientflow.modules.triage.engine import Question
from patientflow.modules.visits.schemas import SymptomEntry

class TriageStartOut(BaseModel):
    question: Question

class TriageAnswer(BaseModel):
    answer: str = Field(..., min_length=1, max_length=500)

class TriageStepOut(BaseModel):
    question: Question | None = None
    is_complete: bool = False
    summary: dict[str, str] | None = None

class TriageSummaryOut(BaseModel):
    symptoms: list[SymptomEntry]
    summary: dict[str, str] | None

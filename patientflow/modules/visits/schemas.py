import uuid
from datetime import datetime
from typing import Literal
from pydantic import BaseModel, Field

class SymptomEntry(BaseModel):
    question: str
    answer: str
    timestamp: str

class VisitOut(BaseModel):
    id: uuid.UUID
    org_id: uuid.UUID
    patient_id: uuid.UUID
    status: str
    assigned_doctor_id: uuid.UUID | None
    room_number: str | None
    priority: int
    request_time: datetime
    approval_time: datetime | None
    triage_start_time: datetime | None
    triage_end_time: datetime | None
    consultation_start_time: datetime | None
    consultation_end_time: datetime | None
    symptom_history: list[SymptomEntry] = []
    triage_summary: dict[str, str] | None
    notes: str | None
    class Config: from_attributes = True

class VisitStatusOut(BaseModel):
    visit: VisitOut
    position: int | None = None

class ProcessDecision(BaseModel):
    decision: Literal["approved", "rejected"]
    room_number: str | None = None
    doctor_id: uuid.UUID | None = None

class ConsultationStatusChange(BaseModel):
    status: Literal["waiting", "with_doctor", "completed"]

class NotesUpdate(BaseModel):
    notes: str | None = Field(default=None, max_length=4000)

class PriorityUpdate(BaseModel):
    # range enforced by the service so the core reports it as a validation_error
    priority: int

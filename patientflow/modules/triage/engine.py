"""Deterministic triage question sequencing.

A triage session is nothing more than its ordered history of
``{question, answer, timestamp}`` entries. Every function here is a pure
function of that history: the question currently awaiting an answer, the
follow-up after a new answer, and the summary handed to the doctor are all
recomputed from it, so the only state that needs persisting is the history.

Branching looks at the latest answer only (a flat, one-level lookup table);
earlier answers never influence which question comes next.
"""
import enum
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from patientflow.core.errors import InvalidState

# hard cap; triage ends after this many answers regardless of content
MAX_ANSWERS = 5

UNKNOWN = "Unknown"
PLACEHOLDER_SEVERITY = "Moderate"
PLACEHOLDER_ACTION = "Medical evaluation needed"


class Question(BaseModel):
    text: str
    options: list[str]


class PrimarySymptom(str, enum.Enum):
    FEVER = "Fever"
    HEADACHE = "Headache"
    CHEST_PAIN = "Chest Pain"
    STOMACH_PAIN = "Stomach Pain"
    DIFFICULTY_BREATHING = "Difficulty Breathing"
    OTHER = "Other"


INITIAL_QUESTION = Question(
    text="What is your main symptom today?",
    options=[s.value for s in PrimarySymptom],
)

FOLLOW_UPS: dict[PrimarySymptom, Question] = {
    PrimarySymptom.FEVER: Question(
        text="How long have you had the fever?",
        options=["Less than 24 hours", "1-3 days", "More than 3 days"],
    ),
    PrimarySymptom.HEADACHE: Question(
        text="How would you describe the pain?",
        options=["Throbbing", "Constant", "Sharp", "Dull"],
    ),
    PrimarySymptom.CHEST_PAIN: Question(
        text="Is the pain worse with movement or breathing?",
        options=["Yes", "No", "Unsure"],
    ),
    PrimarySymptom.STOMACH_PAIN: Question(
        text="Where is the pain located?",
        options=["Upper abdomen", "Lower abdomen", "All over"],
    ),
    PrimarySymptom.DIFFICULTY_BREATHING: Question(
        text="When did this start?",
        options=["Today", "Past few days", "Over a week"],
    ),
}

GENERIC_QUESTION = Question(
    text="Are you experiencing any other symptoms?",
    options=["Yes", "No"],
)


class TriageSummary(BaseModel):
    """Fixed-key summary; serialized with the camelCase keys doctors' tools expect."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    primary_symptom: str
    duration: str
    severity: str
    recommended_action: str
    full_symptom_history: str

    def as_mapping(self) -> dict[str, str]:
        return self.model_dump(by_alias=True)


def start_session() -> Question:
    return INITIAL_QUESTION


def follow_up_for(answer: str) -> Question:
    try:
        symptom = PrimarySymptom(answer)
    except ValueError:
        return GENERIC_QUESTION
    return FOLLOW_UPS.get(symptom, GENERIC_QUESTION)


def is_complete(history: list[dict]) -> bool:
    return len(history) >= MAX_ANSWERS


def next_step(history: list[dict]) -> Question | TriageSummary:
    """What follows ``history``: another question, or the summary once the cap is hit."""
    if not history:
        return INITIAL_QUESTION
    if is_complete(history):
        return summarize(history)
    return follow_up_for(history[-1]["answer"])


def pending_question(history: list[dict]) -> Question:
    step = next_step(history)
    if isinstance(step, TriageSummary):
        raise InvalidState("triage already completed")
    return step


def submit(history: list[dict], answer: str, now: datetime | None = None) -> tuple[list[dict], Question | TriageSummary]:
    """Record ``answer`` against the pending question.

    Returns the new history (the input is not mutated) and the next step.
    """
    question = pending_question(history)
    entry = {
        "question": question.text,
        "answer": answer,
        "timestamp": (now or datetime.now(timezone.utc)).isoformat(),
    }
    new_history = [*history, entry]
    return new_history, next_step(new_history)


def summarize(history: list[dict]) -> TriageSummary:
    def answer_at(i: int) -> str:
        if i < len(history) and history[i].get("answer"):
            return history[i]["answer"]
        return UNKNOWN

    return TriageSummary(
        primary_symptom=answer_at(0),
        duration=answer_at(1),
        severity=PLACEHOLDER_SEVERITY,
        recommended_action=PLACEHOLDER_ACTION,
        full_symptom_history="; ".join(f"{h.get('question', '')}: {h.get('answer', '')}" for h in history),
    )

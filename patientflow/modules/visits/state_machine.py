"""Legal status transitions of a visit record and what each one stamps."""
import enum
from dataclasses import dataclass
from datetime import datetime

from patientflow.core.errors import InvalidTransition, Forbidden
from patientflow.modules.visits.models import VisitStatus


class Actor(str, enum.Enum):
    PATIENT = "patient"
    STAFF = "staff"
    DOCTOR = "doctor"
    SYSTEM = "system"


@dataclass(frozen=True)
class Transition:
    source: VisitStatus
    target: VisitStatus
    actors: frozenset[Actor]
    stamps: str | None = None  # timestamp column set on this edge


S = VisitStatus

TRANSITIONS: dict[tuple[VisitStatus, VisitStatus], Transition] = {
    (t.source, t.target): t
    for t in (
        Transition(S.PENDING, S.APPROVED, frozenset({Actor.STAFF}), "approval_time"),
        Transition(S.PENDING, S.REJECTED, frozenset({Actor.STAFF}), "approval_time"),
        Transition(S.APPROVED, S.IN_TRIAGE, frozenset({Actor.PATIENT}), "triage_start_time"),
        Transition(S.IN_TRIAGE, S.IN_TRIAGE, frozenset({Actor.PATIENT})),
        Transition(S.IN_TRIAGE, S.WAITING, frozenset({Actor.PATIENT, Actor.SYSTEM}), "triage_end_time"),
        Transition(S.WAITING, S.WITH_DOCTOR, frozenset({Actor.DOCTOR}), "consultation_start_time"),
        Transition(S.WITH_DOCTOR, S.COMPLETED, frozenset({Actor.DOCTOR}), "consultation_end_time"),
    )
}


def check(source: str, target: str, actor: Actor) -> Transition:
    """Return the edge ``source -> target`` or raise if it is not allowed for ``actor``."""
    try:
        edge = TRANSITIONS[(VisitStatus(source), VisitStatus(target))]
    except (KeyError, ValueError):
        raise InvalidTransition(f"{source} -> {target} is not a legal transition")
    if actor not in edge.actors:
        raise Forbidden(f"{actor.value} may not move a visit from {source} to {target}")
    return edge


def apply(source: str, target: str, actor: Actor, now: datetime) -> dict:
    """Column changes for the transition: the new status plus its timestamp, if any."""
    edge = check(source, target, actor)
    changes: dict = {"status": edge.target.value}
    if edge.stamps:
        changes[edge.stamps] = now
    return changes


def allowed_targets(source: str) -> set[str]:
    return {target.value for (src, target) in TRANSITIONS if src.value == source}

import pytest

from patientflow.core.errors import InvalidState
from patientflow.modules.triage import engine
from patientflow.modules.triage.engine import Question, TriageSummary


def answer_all(*answers: str):
    history: list[dict] = []
    step = engine.start_session()
    for a in answers:
        history, step = engine.submit(history, a)
    return history, step


def test_initial_question_offers_primary_symptoms():
    q = engine.start_session()
    assert q.text == "What is your main symptom today?"
    assert q.options == ["Fever", "Headache", "Chest Pain", "Stomach Pain", "Difficulty Breathing", "Other"]


@pytest.mark.parametrize("symptom, expected", [
    ("Fever", "How long have you had the fever?"),
    ("Headache", "How would you describe the pain?"),
    ("Chest Pain", "Is the pain worse with movement or breathing?"),
    ("Stomach Pain", "Where is the pain located?"),
    ("Difficulty Breathing", "When did this start?"),
])
def test_follow_up_is_keyed_by_primary_symptom(symptom, expected):
    _, step = answer_all(symptom)
    assert isinstance(step, Question)
    assert step.text == expected


@pytest.mark.parametrize("answer", ["Other", "Dizziness", "fever"])
def test_unknown_answer_falls_back_to_generic_question(answer):
    _, step = answer_all(answer)
    assert step == engine.GENERIC_QUESTION


def test_branching_only_looks_at_latest_answer():
    # "Fever" earlier in the history does not bring the duration question back
    _, step = answer_all("Fever", "1-3 days", "Headache")
    assert step.text == "How would you describe the pain?"
    _, step = answer_all("Headache", "Dull", "Yes")
    assert step == engine.GENERIC_QUESTION


def test_history_records_the_question_each_answer_was_given_to():
    history, _ = answer_all("Fever", "1-3 days")
    assert [h["question"] for h in history] == [
        "What is your main symptom today?",
        "How long have you had the fever?",
    ]
    assert [h["answer"] for h in history] == ["Fever", "1-3 days"]
    assert all(h["timestamp"] for h in history)


def test_submit_does_not_mutate_input_history():
    history, _ = answer_all("Fever")
    snapshot = list(history)
    engine.submit(history, "1-3 days")
    assert history == snapshot


def test_fifth_answer_always_terminates():
    for answers in (
        ("Fever", "1-3 days", "Yes", "Yes", "Yes"),
        ("Chest Pain", "Chest Pain", "Chest Pain", "Chest Pain", "Chest Pain"),
        ("Other", "No", "No", "No", "No"),
    ):
        history, step = answer_all(*answers)
        assert len(history) == engine.MAX_ANSWERS
        assert isinstance(step, TriageSummary)


def test_four_answers_still_yield_a_question():
    _, step = answer_all("Fever", "1-3 days", "Yes", "No")
    assert isinstance(step, Question)


def test_submit_after_completion_is_invalid_state():
    history, _ = answer_all("Fever", "1-3 days", "Yes", "Yes", "Yes")
    with pytest.raises(InvalidState):
        engine.submit(history, "one more")


def test_summary_fields():
    history, summary = answer_all("Fever", "1-3 days", "Yes", "No", "No")
    mapping = summary.as_mapping()
    assert list(mapping) == ["primarySymptom", "duration", "severity", "recommendedAction", "fullSymptomHistory"]
    assert mapping["primarySymptom"] == "Fever"
    assert mapping["duration"] == "1-3 days"
    assert mapping["severity"] == engine.PLACEHOLDER_SEVERITY
    assert mapping["recommendedAction"] == engine.PLACEHOLDER_ACTION
    assert mapping["fullSymptomHistory"].startswith(
        "What is your main symptom today?: Fever; How long have you had the fever?: 1-3 days; "
    )
    assert mapping["fullSymptomHistory"].count("; ") == 4


def test_summarize_is_deterministic():
    history, _ = answer_all("Headache", "Sharp", "No", "No", "No")
    assert engine.summarize(history) == engine.summarize([dict(h) for h in history])


def test_summarize_degrades_missing_entries_to_unknown():
    assert engine.summarize([]).as_mapping() == {
        "primarySymptom": "Unknown",
        "duration": "Unknown",
        "severity": engine.PLACEHOLDER_SEVERITY,
        "recommendedAction": engine.PLACEHOLDER_ACTION,
        "fullSymptomHistory": "",
    }
    one = [{"question": "What is your main symptom today?", "answer": "Fever", "timestamp": "t"}]
    assert engine.summarize(one).duration == "Unknown"

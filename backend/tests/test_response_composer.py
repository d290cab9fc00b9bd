from __future__ import annotations

import asyncio

from careassist_core import ConditionMatcher, ResponseComposer, default_catalog
from careassist_core.composer import SYSTEM_INSTRUCTION
from fakes import FakeCompletion


def _analyze(symptom_ids: list[str]):
    catalog = default_catalog()
    symptoms = [catalog.symptom(symptom_id) for symptom_id in symptom_ids]
    matches = ConditionMatcher(catalog).match(symptom_ids)
    return symptoms, matches


def test_condition_response_includes_supplement():
    completion = FakeCompletion("Flu season usually peaks in winter.")
    symptoms, matches = _analyze(["fever", "cough", "body_aches"])
    composed = asyncio.run(ResponseComposer(completion).compose(symptoms, matches, "raw", "en"))

    assert composed.path == "condition"
    assert composed.completion_ok is True
    assert composed.text.startswith("Based on the symptoms you've described, you may have Influenza (Flu).")
    assert "Recommendations: Rest and stay hydrated." in composed.text
    assert "medium severity" in composed.text
    assert composed.text.endswith("\n\nAdditional information: Flu season usually peaks in winter.")
    assert "Influenza (Flu)" in completion.prompts[0]


def test_condition_response_without_supplement_when_completion_fails():
    symptoms, matches = _analyze(["runny_nose", "cough", "sore_throat"])
    composed = asyncio.run(ResponseComposer(FakeCompletion(fail=True)).compose(symptoms, matches, "raw", "en"))

    assert composed.path == "condition"
    assert composed.completion_ok is False
    assert "Common Cold" in composed.text
    assert "low severity" in composed.text
    assert "Additional information" not in composed.text


def test_symptoms_without_condition_response():
    symptoms, matches = _analyze(["cough"])
    assert matches == []
    composed = asyncio.run(ResponseComposer(FakeCompletion("Coughs often clear up.")).compose(symptoms, matches, "raw", "en"))

    assert composed.path == "symptoms"
    assert composed.text.startswith("I've identified that you're experiencing the following symptoms: Cough.")
    assert composed.text.endswith("Additional information: Coughs often clear up.")


def test_no_symptoms_defers_to_completion():
    completion = FakeCompletion("  Sleep matters a lot.  ")
    composed = asyncio.run(ResponseComposer(completion).compose([], [], "How much sleep do I need?", "en"))

    assert composed.path == "model"
    assert composed.completion_ok is True
    assert composed.text == "Sleep matters a lot."
    assert completion.prompts == ["How much sleep do I need?"]


def test_no_symptoms_and_failed_completion_asks_for_details():
    composed = asyncio.run(ResponseComposer(FakeCompletion(fail=True)).compose([], [], "hello there", "en"))

    assert composed.completion_ok is False
    assert composed.text.startswith("I couldn't identify specific symptoms")


def test_completion_timeout_counts_as_failure():
    class _SlowCompletion:
        async def complete(self, prompt, system_instruction):
            await asyncio.sleep(1)
            return "too late"

    composer = ResponseComposer(_SlowCompletion(), timeout_seconds=0.01)
    composed = asyncio.run(composer.compose([], [], "anything at all", "en"))
    assert composed.completion_ok is False


def test_system_instruction_mentions_not_a_doctor():
    seen: list[str] = []

    class _RecordingCompletion:
        async def complete(self, prompt, system_instruction):
            seen.append(system_instruction)
            return "ok"

    asyncio.run(ResponseComposer(_RecordingCompletion()).compose([], [], "question", "en"))
    assert seen == [SYSTEM_INSTRUCTION]
    assert "not a doctor" in SYSTEM_INSTRUCTION

from __future__ import annotations

import asyncio

import pytest

from careassist_core import CaptureEvent, Catalog, HookRunner, default_catalog
from fakes import (
    FakeCapture,
    FakeCompletion,
    FakeDetector,
    FakePlayback,
    FakeTranslator,
    MemoryPreferenceStore,
    build_orchestrator,
)

FULL_LIFECYCLE = [
    "idle",
    "capturing",
    "detecting",
    "translating_in",
    "analyzing",
    "composing",
    "translating_out",
    "speaking",
    "idle",
]

SPANISH = "Tengo fiebre y dolor de cabeza desde ayer"
SPANISH_PIVOT = "I have had a fever and a headache since yesterday"


def test_english_turn_is_answered_locally():
    translator = FakeTranslator()
    playback = FakePlayback()
    orchestrator = build_orchestrator(
        translator=translator,
        completion=FakeCompletion("Influenza spreads easily."),
        playback=playback,
    )

    outcome = asyncio.run(orchestrator.submit("I have a headache and nausea"))

    assert outcome.status == "answered"
    assert outcome.lifecycle == FULL_LIFECYCLE
    assert outcome.detected_language == "en"
    assert outcome.language_suggestion is None
    assert [match.condition.id for match in outcome.matches][0] == "migraine"
    assert translator.calls == []

    messages = orchestrator.log.messages
    assert [message.sender for message in messages] == ["user", "assistant"]
    reply = messages[1]
    assert "you may have Migraine" in reply.text
    assert reply.text.endswith("Additional information: Influenza spreads easily.")
    assert reply.original_text is None
    assert reply.language == "en"
    assert [symptom.id for symptom in reply.detected_symptoms] == ["headache", "nausea"]
    assert playback.spoken == [(reply.text, "en-US")]
    assert orchestrator.state == "idle"


def test_foreign_language_turn_translates_both_ways():
    detector = FakeDetector({SPANISH: "es"})
    translator = FakeTranslator({(SPANISH, "en"): SPANISH_PIVOT}, tag_unknown=True)
    playback = FakePlayback()
    orchestrator = build_orchestrator(detector=detector, translator=translator, playback=playback)

    outcome = asyncio.run(orchestrator.submit(SPANISH))

    assert outcome.status == "answered"
    assert outcome.detected_language == "es"
    assert outcome.output_language == "es"
    assert outcome.language_suggestion == "es"
    assert outcome.matches[0].condition.id == "strep_throat"
    assert translator.calls[0] == (SPANISH, "en", "es")
    assert translator.calls[1][1:] == ("es", "en")

    reply = outcome.assistant_message
    assert reply.text.startswith("[es] Based on the symptoms you've described")
    assert reply.original_text.startswith("Based on the symptoms you've described")
    assert reply.language == "es"
    assert playback.spoken[0][1] == "es-ES"


def test_auto_translate_off_keeps_pivot_reply():
    detector = FakeDetector({SPANISH: "es"})
    translator = FakeTranslator({(SPANISH, "en"): SPANISH_PIVOT}, tag_unknown=True)
    store = MemoryPreferenceStore({"auto_translate": False})
    orchestrator = build_orchestrator(detector=detector, translator=translator, store=store)

    outcome = asyncio.run(orchestrator.submit(SPANISH))

    assert outcome.status == "answered"
    assert len(translator.calls) == 1
    assert outcome.assistant_message.language == "en"
    assert outcome.assistant_message.original_text is None
    assert outcome.lifecycle == FULL_LIFECYCLE


def test_translator_failure_degrades_to_input_text():
    detector = FakeDetector({SPANISH: "es"})
    orchestrator = build_orchestrator(detector=detector, translator=FakeTranslator(fail=True))

    outcome = asyncio.run(orchestrator.submit(SPANISH))

    # The Spanish keywords still match without an inbound translation.
    assert outcome.status == "answered"
    assert {symptom.id for symptom in outcome.assistant_message.detected_symptoms} == {"fever", "headache"}
    assert outcome.output_language == "en"
    assert outcome.assistant_message.original_text is None


def test_detector_failure_falls_back_to_working_language():
    store = MemoryPreferenceStore({"working_language": "fr"})
    translator = FakeTranslator()
    orchestrator = build_orchestrator(detector=FakeDetector(fail=True), translator=translator, store=store)

    outcome = asyncio.run(orchestrator.submit("J'ai de la fièvre et mal de gorge"))

    assert outcome.status == "answered"
    assert outcome.detected_language == "fr"
    assert outcome.language_suggestion is None
    assert translator.calls[0][1:] == ("en", "fr")


def test_completion_failure_aborts_turn_with_single_notice():
    playback = FakePlayback()
    orchestrator = build_orchestrator(completion=FakeCompletion(fail=True), playback=playback)

    outcome = asyncio.run(orchestrator.submit("I have a fever and a bad cough"))

    assert outcome.status == "aborted"
    assert outcome.assistant_message is None
    assert [notice.code for notice in outcome.notices] == ["completion_unavailable"]
    assert outcome.lifecycle[-2:] == ["composing", "idle"]
    assert [message.sender for message in orchestrator.log] == ["user"]
    assert [notice.code for notice in orchestrator.notices.active()] == ["completion_unavailable"]
    assert playback.spoken == []


def test_completion_failure_can_still_answer_locally():
    orchestrator = build_orchestrator(
        completion=FakeCompletion(fail=True),
        abort_on_completion_failure=False,
    )

    outcome = asyncio.run(orchestrator.submit("I have a fever and a bad cough and body ache"))

    assert outcome.status == "answered"
    assert "Influenza (Flu)" in outcome.assistant_message.text
    assert "Additional information" not in outcome.assistant_message.text
    assert outcome.notices == []


def test_empty_input_is_discarded():
    orchestrator = build_orchestrator()

    outcome = asyncio.run(orchestrator.submit("   "))

    assert outcome.status == "discarded"
    assert outcome.lifecycle == ["idle", "capturing", "idle"]
    assert len(orchestrator.log) == 0
    assert orchestrator.last_outcome is None


def test_symptom_model_disabled_sends_raw_text_to_completion():
    completion = FakeCompletion("General advice.")
    store = MemoryPreferenceStore({"symptom_model_enabled": False})
    orchestrator = build_orchestrator(completion=completion, store=store)

    outcome = asyncio.run(orchestrator.submit("I have a fever and a bad cough"))

    assert outcome.status == "answered"
    assert outcome.matches == []
    assert outcome.assistant_message.text == "General advice."
    assert outcome.assistant_message.detected_symptoms == ()
    assert completion.prompts == ["I have a fever and a bad cough"]


def test_unsupported_detected_language_is_not_suggested():
    text = "Nina homa na kikohozi"
    orchestrator = build_orchestrator(detector=FakeDetector({text: "sw"}))

    outcome = asyncio.run(orchestrator.submit(text))

    assert outcome.detected_language == "sw"
    assert outcome.language_suggestion is None


def test_newer_turn_supersedes_pending_turn():
    async def scenario():
        gate = asyncio.Event()
        completion = FakeCompletion("Shared advice.")
        completion.gate = gate
        orchestrator = build_orchestrator(completion=completion)

        first = asyncio.create_task(orchestrator.submit("I have a fever and a bad cough"))
        while not completion.prompts:
            await asyncio.sleep(0)

        completion.gate = None
        second = await orchestrator.submit("I have a headache and nausea")
        gate.set()
        return orchestrator, await first, second

    orchestrator, first, second = asyncio.run(scenario())

    assert first.status == "stale"
    assert first.assistant_message is None
    assert second.status == "answered"
    assert second.generation == first.generation + 1
    assistant_messages = orchestrator.log.by_sender("assistant")
    assert len(assistant_messages) == 1
    assert assistant_messages[0].turn_id == second.turn_id
    assert orchestrator.last_outcome is second


def test_capture_events_drive_the_turn():
    orchestrator = build_orchestrator()

    async def scenario():
        await orchestrator.handle_capture_event(CaptureEvent(kind="partial", transcript="I have a"))
        partial_state = (orchestrator.state, orchestrator.live_transcript)
        outcome = await orchestrator.handle_capture_event(
            CaptureEvent(kind="final", transcript="I have a headache and nausea")
        )
        return partial_state, outcome

    partial_state, outcome = asyncio.run(scenario())

    assert partial_state == ("capturing", "I have a")
    assert outcome.status == "answered"
    assert orchestrator.live_transcript is None
    assert orchestrator.log.messages[0].text == "I have a headache and nausea"


def test_capture_errors_raise_notices():
    store = MemoryPreferenceStore()
    orchestrator = build_orchestrator(store=store)

    async def scenario():
        await orchestrator.handle_capture_event(CaptureEvent(kind="error", code="network"))
        await orchestrator.handle_capture_event(CaptureEvent(kind="error", code="not-supported"))
        await orchestrator.handle_capture_event(CaptureEvent(kind="error", code="not-supported"))

    asyncio.run(scenario())

    codes = [notice.code for notice in orchestrator.notices.all]
    assert codes == ["capture_error", "voice_input_unsupported"]
    assert "network" in orchestrator.notices.all[0].text
    assert store.values["voice_input_enabled"] is False


def test_missing_speech_output_reported_once():
    store = MemoryPreferenceStore()
    orchestrator = build_orchestrator(store=store)

    first = orchestrator.report_capabilities(voice_input=True, speech_output=False)
    second = orchestrator.report_capabilities(speech_output=False)

    assert [notice.code for notice in first] == ["speech_output_unsupported"]
    assert second == []
    assert store.values["speech_output_enabled"] is False


def test_unsupported_playback_falls_back_to_text():
    playback = FakePlayback(supported=False)
    orchestrator = build_orchestrator(playback=playback)

    outcome = asyncio.run(orchestrator.submit("I have a headache and nausea"))

    assert outcome.status == "answered"
    assert [notice.code for notice in outcome.notices] == ["speech_output_unsupported"]
    assert playback.spoken == []


def test_speech_output_toggle_skips_playback():
    playback = FakePlayback()
    store = MemoryPreferenceStore({"speech_output_enabled": False})
    orchestrator = build_orchestrator(playback=playback, store=store)

    outcome = asyncio.run(orchestrator.submit("I have a headache and nausea"))

    assert outcome.status == "answered"
    assert playback.spoken == []
    assert outcome.lifecycle == FULL_LIFECYCLE


def test_after_turn_hooks_run_and_failures_are_contained():
    seen: list[tuple[str, str]] = []
    hooks = HookRunner()
    hooks.add_after(lambda key, outcome: seen.append((key, outcome.status)))

    def _broken(key, outcome):
        raise RuntimeError("boom")

    hooks.add_after(_broken)
    orchestrator = build_orchestrator(hooks=hooks, session_key="session-a")

    outcome = asyncio.run(orchestrator.submit("I have a headache and nausea"))

    assert outcome.status == "answered"
    assert seen == [("session-a", "answered")]


def test_end_session_closes_the_log():
    playback = FakePlayback()
    orchestrator = build_orchestrator(playback=playback)
    asyncio.run(orchestrator.submit("I have a headache and nausea"))

    orchestrator.end_session()

    assert len(orchestrator.log) == 0
    assert playback.cancelled >= 1
    with pytest.raises(RuntimeError, match="ended"):
        asyncio.run(orchestrator.submit("I have a headache and nausea"))


def test_headache_and_fever_resolve_to_migraine_in_reduced_catalog():
    full = default_catalog()
    catalog = Catalog(
        full.symptoms,
        [condition for condition in full.conditions if condition.id in {"common_cold", "migraine"}],
    )
    orchestrator = build_orchestrator(catalog=catalog)

    outcome = asyncio.run(orchestrator.submit("I have a headache and fever"))

    assert outcome.status == "answered"
    assert {symptom.id for symptom in outcome.assistant_message.detected_symptoms} == {"headache", "fever"}
    assert [match.condition.id for match in outcome.matches] == ["migraine"]
    assert outcome.matches[0].match_ratio == pytest.approx(1 / 3)
    assert "you may have Migraine" in outcome.assistant_message.text


def test_empty_input_does_not_supersede_pending_turn():
    async def scenario():
        gate = asyncio.Event()
        completion = FakeCompletion("Rest well.")
        completion.gate = gate
        orchestrator = build_orchestrator(completion=completion)

        pending = asyncio.create_task(orchestrator.submit("I have a fever and a bad cough"))
        while not completion.prompts:
            await asyncio.sleep(0)

        empty = await orchestrator.submit("   ")
        in_flight_state = orchestrator.state
        gate.set()
        return orchestrator, empty, in_flight_state, await pending

    orchestrator, empty, in_flight_state, pending = asyncio.run(scenario())

    assert empty.status == "discarded"
    assert in_flight_state == "composing"
    assert pending.status == "answered"
    assert pending.generation == empty.generation
    assert len(orchestrator.log.by_sender("assistant")) == 1


def test_ending_session_turns_pending_turn_stale():
    async def scenario():
        gate = asyncio.Event()
        completion = FakeCompletion("Rest well.")
        completion.gate = gate
        orchestrator = build_orchestrator(completion=completion)

        pending = asyncio.create_task(orchestrator.submit("I have a fever and a bad cough"))
        while not completion.prompts:
            await asyncio.sleep(0)

        orchestrator.end_session()
        gate.set()
        return orchestrator, await pending

    orchestrator, pending = asyncio.run(scenario())

    assert pending.status == "stale"
    assert pending.assistant_message is None
    assert len(orchestrator.log) == 0
    assert orchestrator.state == "idle"


def test_state_listener_sees_each_transition_as_it_happens():
    seen: list[tuple[str, int]] = []
    orchestrator = build_orchestrator()

    def on_state(state: str) -> None:
        seen.append((state, len(orchestrator.log.by_sender("assistant"))))

    outcome = asyncio.run(orchestrator.submit("I have a headache and nausea", on_state=on_state))

    assert [state for state, _ in seen] == outcome.lifecycle == FULL_LIFECYCLE
    assert dict(seen[:-1])["composing"] == 0


def test_attached_capture_reports_turn_outcomes():
    capture = FakeCapture()
    outcomes = []
    orchestrator = build_orchestrator()
    orchestrator.attach_capture(capture, on_outcome=outcomes.append)

    async def scenario():
        await capture.emit(CaptureEvent(kind="partial", transcript="I have"))
        await capture.emit(CaptureEvent(kind="final", transcript="I have a headache and nausea"))

    asyncio.run(scenario())

    assert [outcome.status for outcome in outcomes] == ["answered"]
    assert orchestrator.last_outcome is outcomes[0]

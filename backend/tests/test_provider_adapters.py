from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from careassist_core import COMPLETION_APOLOGY, CaptureEvent
from careassist_services import (
    CompletionService,
    GoogleTranslateService,
    SSESpeechPlayback,
    TranscriptionError,
    WhisperSpeechCapture,
    chat_provider_candidates,
)
from careassist_services.speech import estimate_transcription_confidence


def _translate_transport(seen: list[httpx.Request]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        body = json.loads(request.content)
        if request.url.path.endswith("/detect"):
            return httpx.Response(200, json={"data": {"detections": [[{"language": "es", "confidence": 0.98}]]}})
        return httpx.Response(200, json={"data": {"translations": [{"translatedText": f"<{body['target']}>"}]}})

    return httpx.MockTransport(handler)


def test_google_translate_detect_and_translate():
    seen: list[httpx.Request] = []
    service = GoogleTranslateService(api_key=lambda: "gt-key", transport=_translate_transport(seen))

    detected = asyncio.run(service.detect("Tengo fiebre desde ayer", "en"))
    translated = asyncio.run(service.translate("Tengo fiebre", "en", "es"))

    assert detected == "es"
    assert translated == "<en>"
    assert seen[0].url.params["key"] == "gt-key"
    assert json.loads(seen[1].content) == {"q": "Tengo fiebre", "target": "en", "format": "text", "source": "es"}


def test_google_translate_skips_short_text_and_same_language():
    seen: list[httpx.Request] = []
    service = GoogleTranslateService(api_key=lambda: "gt-key", transport=_translate_transport(seen))

    assert asyncio.run(service.detect("hola", "fr")) == "fr"
    assert asyncio.run(service.translate("hello", "en-US", "en")) == "hello"
    assert seen == []


def test_google_translate_failures_return_inputs():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"error": {"message": "API key not valid"}})

    service = GoogleTranslateService(api_key=lambda: "bad", transport=httpx.MockTransport(handler))
    missing_key = GoogleTranslateService(api_key=lambda: None, transport=httpx.MockTransport(handler))

    assert asyncio.run(service.detect("Tengo fiebre desde ayer", "en")) == "en"
    assert asyncio.run(service.translate("Tengo fiebre", "en", "es")) == "Tengo fiebre"
    assert asyncio.run(missing_key.translate("Tengo fiebre", "en", "es")) == "Tengo fiebre"


def test_completion_falls_through_providers():
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.host)
        if request.url.host == "api.anthropic.com":
            return httpx.Response(529, json={"error": {"message": "overloaded"}})
        payload = json.loads(request.content)
        assert payload["max_tokens"] == 500
        assert payload["messages"][0]["role"] == "system"
        return httpx.Response(200, json={"choices": [{"message": {"content": "Stay hydrated."}}]})

    candidates = [
        {"provider": "anthropic", "base_url": "https://api.anthropic.com/v1", "api_key": "a", "model": "m"},
        {"provider": "openai", "base_url": "https://api.openai.com/v1", "api_key": "o", "model": "gpt-4o"},
    ]
    service = CompletionService(candidates=lambda: candidates, transport=httpx.MockTransport(handler))

    assert asyncio.run(service.complete("What helps a cold?", "Be brief.")) == "Stay hydrated."
    assert calls == ["api.anthropic.com", "api.openai.com"]


def test_completion_returns_apology_without_providers():
    assert asyncio.run(CompletionService(candidates=lambda: []).complete("hi", "sys")) == COMPLETION_APOLOGY
    disabled = CompletionService(candidates=lambda: [{"provider": "openai"}], enabled=False)
    assert asyncio.run(disabled.complete("hi", "sys")) == COMPLETION_APOLOGY


def test_chat_provider_candidates_prefers_saved_openai_key(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.setenv("OPENROUTER_API_KEY", "or-key")
    monkeypatch.setenv("OPENAI_API_KEY", "env-key")
    monkeypatch.setenv("CAREASSIST_CHAT_PROVIDER", "openai")

    candidates = chat_provider_candidates("saved-key")

    assert [candidate["provider"] for candidate in candidates] == ["openai", "openrouter"]
    assert candidates[0]["api_key"] == "saved-key"


def test_whisper_capture_emits_partial_then_final_events():
    async def transcriber(**kwargs):
        return {
            "transcript_text": "I have a fever and chills",
            "confidence": 0.9,
            "segments": [{"text": "I have a fever"}, {"text": "and chills"}],
        }

    events: list[CaptureEvent] = []

    async def listener(event: CaptureEvent) -> None:
        events.append(event)

    capture = WhisperSpeechCapture(transcriber)
    capture.subscribe(listener)
    asyncio.run(capture.capture(file_name="a.webm", mime_type="audio/webm", audio_bytes=b"x"))

    assert [(event.kind, event.transcript) for event in events] == [
        ("partial", "I have a fever"),
        ("partial", "I have a fever and chills"),
        ("final", "I have a fever and chills"),
    ]


def test_whisper_capture_reports_errors_to_listeners():
    async def transcriber(**kwargs):
        raise TranscriptionError("no-speech", "No speech was detected in the recording.", status_code=422)

    events: list[CaptureEvent] = []

    async def listener(event: CaptureEvent) -> None:
        events.append(event)

    capture = WhisperSpeechCapture(transcriber)
    capture.subscribe(listener)
    with pytest.raises(TranscriptionError):
        asyncio.run(capture.capture(file_name="a.webm", mime_type="audio/webm", audio_bytes=b"x"))

    assert [(event.kind, event.code) for event in events] == [("error", "no-speech")]


def test_transcription_confidence_estimate():
    assert estimate_transcription_confidence([]) == 0.8
    assert estimate_transcription_confidence([{"avg_logprob": 0.0, "no_speech_prob": 0.0}]) == 1.0


def test_sse_playback_cancels_in_flight_utterance():
    playback = SSESpeechPlayback()
    completed: list[str] = []
    playback.on_complete(completed.append)

    first = playback.speak("first reply", "en-US")
    playback.cancel()
    second = playback.speak("second reply", "es-ES")

    assert [request.utterance_id for request in playback.drain()] == [second]
    assert playback.drain() == []
    assert playback.mark_complete(first) is False
    assert playback.mark_complete(second) is True
    assert completed == [second]


@pytest.mark.parametrize("language", ["en", "es", "fr", "ja", "hi"])
def test_translate_identity_law_skips_the_network(language):
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("identity translation must not call the provider")

    service = GoogleTranslateService(api_key=lambda: "gt-key", transport=httpx.MockTransport(handler))
    text = "Any text at all, even 熱 or बुखार."
    assert asyncio.run(service.translate(text, language, language)) == text

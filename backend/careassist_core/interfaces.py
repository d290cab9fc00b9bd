"""Capabilities the pipeline consumes but never implements itself.

Every capability is injected. Detector, Translator and CompletionProvider are
expected to swallow their own failures and hand back a fallback value; the
pipeline still wraps each call with a timeout and a catch-all so a misbehaving
adapter degrades the same way a failing one does.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Protocol, TypeVar

from loguru import logger

from .models import CaptureEvent

T = TypeVar("T")

COMPLETION_APOLOGY = "I'm sorry, I encountered an error processing your question. Please try again."
UNSUPPORTED_CAPTURE_CODES = {"not-supported", "unsupported", "service-not-allowed", "audio-capture"}


class Detector(Protocol):
    async def detect(self, text: str, default: str) -> str: ...


class Translator(Protocol):
    async def translate(self, text: str, target_language: str, source_language: str | None = None) -> str: ...


class CompletionProvider(Protocol):
    async def complete(self, prompt: str, system_instruction: str) -> str: ...


CaptureListener = Callable[[CaptureEvent], Awaitable[Any]]


class SpeechCapture(Protocol):
    def subscribe(self, listener: CaptureListener) -> None: ...


class SpeechPlayback(Protocol):
    supported: bool

    def speak(self, text: str, language_tag: str) -> str: ...

    def cancel(self) -> None: ...

    def on_complete(self, listener: Callable[[str], None]) -> None: ...


class PreferenceStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


def is_completion_failure(text: str | None) -> bool:
    cleaned = (text or "").strip()
    return not cleaned or cleaned == COMPLETION_APOLOGY


async def call_with_fallback(
    awaitable: Awaitable[T],
    *,
    fallback: T,
    timeout_seconds: float,
    label: str,
) -> T:
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.warning("{} timed out after {}s; using fallback", label, timeout_seconds)
    except Exception as exc:
        logger.warning("{} failed: {}; using fallback", label, exc)
    return fallback

from __future__ import annotations

import os
from typing import Any, Callable

import httpx
from loguru import logger

from careassist_core.locales import primary_language

from .http_utils import async_client, provider_error_message

GOOGLE_TRANSLATE_BASE = os.getenv(
    "GOOGLE_TRANSLATE_BASE_URL", "https://translation.googleapis.com/language/translate/v2"
).rstrip("/")
# Shorter texts are too ambiguous to detect reliably.
MIN_DETECTION_LENGTH = 10

KeyResolver = Callable[[], "str | None"]


class GoogleTranslateService:
    """Detector and Translator over the Cloud Translation v2 REST API.

    Neither call raises: detection falls back to the caller's default and
    translation hands back the input text.
    """

    def __init__(
        self,
        *,
        api_key: KeyResolver,
        base_url: str = GOOGLE_TRANSLATE_BASE,
        timeout_seconds: float = 10.0,
        enabled: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.enabled = enabled
        self._transport = transport

    async def detect(self, text: str, default: str) -> str:
        cleaned = (text or "").strip()
        if not cleaned or len(cleaned) < MIN_DETECTION_LENGTH:
            return default
        payload = await self._post("/detect", {"q": cleaned}, label="language detection")
        if payload is None:
            return default
        try:
            language = payload["data"]["detections"][0][0]["language"]
        except (KeyError, IndexError, TypeError):
            logger.warning("language detection returned an unexpected payload")
            return default
        if not isinstance(language, str) or not language.strip() or language == "und":
            return default
        return language.strip()

    async def translate(self, text: str, target_language: str, source_language: str | None = None) -> str:
        if source_language and primary_language(source_language) == primary_language(target_language):
            return text
        if not (text or "").strip():
            return text
        body: dict[str, Any] = {"q": text, "target": target_language, "format": "text"}
        if source_language:
            body["source"] = source_language
        payload = await self._post("", body, label="translation")
        if payload is None:
            return text
        try:
            translated = payload["data"]["translations"][0]["translatedText"]
        except (KeyError, IndexError, TypeError):
            logger.warning("translation returned an unexpected payload")
            return text
        if not isinstance(translated, str) or not translated.strip():
            return text
        return translated

    async def _post(self, path: str, body: dict[str, Any], *, label: str) -> dict[str, Any] | None:
        if not self.enabled:
            return None
        api_key = self._api_key()
        if not api_key:
            logger.warning("{} skipped: Google Translate API key not configured", label)
            return None
        try:
            async with async_client(self.timeout_seconds, self._transport) as client:
                response = await client.post(f"{self.base_url}{path}", params={"key": api_key}, json=body)
        except httpx.HTTPError as exc:
            logger.warning("{} request failed: {}", label, exc)
            return None
        if response.status_code >= 400:
            logger.warning("{} error: {}", label, provider_error_message(response))
            return None
        try:
            payload = response.json()
        except ValueError:
            logger.warning("{} returned invalid JSON", label)
            return None
        if not isinstance(payload, dict) or payload.get("error"):
            logger.warning("{} error payload: {}", label, payload)
            return None
        return payload

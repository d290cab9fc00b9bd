from __future__ import annotations

import os
from typing import Any, Callable

import httpx
from loguru import logger

from careassist_core.interfaces import COMPLETION_APOLOGY

from .http_utils import async_client, provider_error_message

_OPENAI_API_BASE = os.getenv("OPENAI_API_BASE_URL", "https://api.openai.com/v1").rstrip("/")
_OPENROUTER_API_BASE = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1").rstrip("/")
_ANTHROPIC_API_BASE = os.getenv("ANTHROPIC_API_BASE_URL", "https://api.anthropic.com/v1").rstrip("/")


def chat_provider_candidates(openai_api_key: str | None = None) -> list[dict[str, Any]]:
    provider_preference = (os.getenv("CAREASSIST_CHAT_PROVIDER") or "auto").strip().lower()
    candidates: list[dict[str, Any]] = []

    anthropic_api_key = (os.getenv("ANTHROPIC_API_KEY") or "").strip()
    if anthropic_api_key:
        candidates.append(
            {
                "provider": "anthropic",
                "base_url": _ANTHROPIC_API_BASE,
                "api_key": anthropic_api_key,
                "model": (os.getenv("ANTHROPIC_MODEL") or "claude-3-5-sonnet-latest").strip(),
            }
        )

    openrouter_api_key = (os.getenv("OPENROUTER_API_KEY") or "").strip()
    if openrouter_api_key:
        candidates.append(
            {
                "provider": "openrouter",
                "base_url": _OPENROUTER_API_BASE,
                "api_key": openrouter_api_key,
                "model": (os.getenv("OPENROUTER_MODEL") or "openai/gpt-4o-mini").strip(),
            }
        )

    # A key saved through the settings endpoint wins over the environment.
    openai_key = (openai_api_key or os.getenv("OPENAI_API_KEY") or "").strip()
    if openai_key:
        candidates.append(
            {
                "provider": "openai",
                "base_url": _OPENAI_API_BASE,
                "api_key": openai_key,
                "model": (os.getenv("CAREASSIST_CHAT_MODEL") or "gpt-4o").strip(),
            }
        )

    if provider_preference in {"", "auto"}:
        return candidates

    aliases = {
        "claude": "anthropic",
        "anthropic": "anthropic",
        "openrouter": "openrouter",
        "openai": "openai",
    }
    canonical = aliases.get(provider_preference)
    if not canonical:
        return candidates
    preferred = [candidate for candidate in candidates if candidate["provider"] == canonical]
    others = [candidate for candidate in candidates if candidate["provider"] != canonical]
    return preferred + others


def _coerce_completion_text(response_json: dict[str, Any]) -> str:
    choices = response_json.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    message = choices[0].get("message", {})
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                text_value = item.get("text")
                if isinstance(text_value, str):
                    parts.append(text_value)
        return "\n".join(parts)
    return ""


def _coerce_anthropic_text(response_json: dict[str, Any]) -> str:
    content = response_json.get("content")
    if not isinstance(content, list):
        return ""
    parts: list[str] = []
    for item in content:
        if not isinstance(item, dict) or item.get("type") != "text":
            continue
        text_value = item.get("text")
        if isinstance(text_value, str) and text_value.strip():
            parts.append(text_value.strip())
    return "\n".join(parts).strip()


class CompletionService:
    """Completion provider chain; returns the apology sentinel when every provider fails."""

    def __init__(
        self,
        *,
        candidates: Callable[[], list[dict[str, Any]]] = chat_provider_candidates,
        timeout_seconds: float = 25.0,
        max_tokens: int = 500,
        enabled: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._candidates = candidates
        self.timeout_seconds = timeout_seconds
        self.max_tokens = max_tokens
        self.enabled = enabled
        self._transport = transport

    async def complete(self, prompt: str, system_instruction: str) -> str:
        if not self.enabled:
            return COMPLETION_APOLOGY
        providers = self._candidates()
        if not providers:
            logger.warning("completion unavailable: no provider key configured")
            return COMPLETION_APOLOGY

        for provider in providers:
            provider_name = str(provider.get("provider") or "unknown")
            try:
                if provider_name == "anthropic":
                    text = await self._anthropic_chat(provider, prompt, system_instruction)
                else:
                    text = await self._openai_compatible_chat(provider, prompt, system_instruction)
                if text:
                    logger.info("completion provider used ({})", provider_name)
                    return text
                logger.warning("completion provider returned an empty response ({})", provider_name)
            except Exception as exc:
                logger.warning("completion call failed ({}): {}", provider_name, exc)
                continue
        return COMPLETION_APOLOGY

    async def _openai_compatible_chat(
        self,
        provider: dict[str, Any],
        prompt: str,
        system_instruction: str,
    ) -> str | None:
        payload = {
            "model": provider["model"],
            "max_tokens": self.max_tokens,
            "messages": [
                {"role": "system", "content": system_instruction},
                {"role": "user", "content": prompt.strip()[:2000]},
            ],
        }
        headers = {
            "Authorization": f"Bearer {provider['api_key']}",
            "Content-Type": "application/json",
        }
        if provider["provider"] == "openrouter":
            site_url = (os.getenv("OPENROUTER_SITE_URL") or "").strip()
            if site_url:
                headers["HTTP-Referer"] = site_url
            headers["X-Title"] = (os.getenv("OPENROUTER_APP_NAME") or "CareAssist").strip()
        async with async_client(self.timeout_seconds, self._transport) as client:
            response = await client.post(f"{provider['base_url']}/chat/completions", headers=headers, json=payload)
        if response.status_code >= 400:
            raise RuntimeError(provider_error_message(response))
        text = _coerce_completion_text(response.json()).strip()
        return text or None

    async def _anthropic_chat(
        self,
        provider: dict[str, Any],
        prompt: str,
        system_instruction: str,
    ) -> str | None:
        payload = {
            "model": provider["model"],
            "max_tokens": self.max_tokens,
            "system": system_instruction,
            "messages": [{"role": "user", "content": prompt.strip()[:2000]}],
        }
        headers = {
            "x-api-key": str(provider["api_key"]),
            "anthropic-version": os.getenv("ANTHROPIC_API_VERSION", "2023-06-01"),
            "Content-Type": "application/json",
        }
        async with async_client(self.timeout_seconds, self._transport) as client:
            response = await client.post(f"{provider['base_url']}/messages", headers=headers, json=payload)
        if response.status_code >= 400:
            raise RuntimeError(provider_error_message(response))
        text = _coerce_anthropic_text(response.json())
        return text or None

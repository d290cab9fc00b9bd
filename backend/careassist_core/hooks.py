from __future__ import annotations

from typing import Callable

from loguru import logger

from .models import TurnOutcome

AfterTurnHook = Callable[[str, TurnOutcome], None]


class HookRunner:
    def __init__(self) -> None:
        self._after_hooks: list[AfterTurnHook] = []

    def add_after(self, hook: AfterTurnHook) -> None:
        self._after_hooks.append(hook)

    def run_after(self, session_key: str, outcome: TurnOutcome) -> None:
        for hook in self._after_hooks:
            try:
                hook(session_key, outcome)
            except Exception:
                logger.exception("after-turn hook failed for {}", outcome.turn_id)

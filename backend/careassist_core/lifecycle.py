from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Callable

StateListener = Callable[[str], None]


class TurnLifecycleError(Exception):
    pass


@dataclass
class TurnRecord:
    turn_id: str
    generation: int
    lifecycle: list[str] = field(default_factory=lambda: ["idle"])
    listener: StateListener | None = field(default=None, repr=False, compare=False)

    @property
    def state(self) -> str:
        return self.lifecycle[-1]

    @property
    def finished(self) -> bool:
        return len(self.lifecycle) > 1 and self.state == "idle"


class TurnLifecycle:
    _TRANSITIONS = {
        "idle": {"capturing"},
        "capturing": {"detecting", "idle"},
        "detecting": {"translating_in", "idle"},
        "translating_in": {"analyzing", "idle"},
        "analyzing": {"composing", "idle"},
        "composing": {"translating_out", "idle"},
        "translating_out": {"speaking", "idle"},
        "speaking": {"idle"},
    }

    def __init__(self) -> None:
        self._generation = 0
        self._current: TurnRecord | None = None

    @property
    def current(self) -> TurnRecord | None:
        return self._current

    def start(self, *, listener: StateListener | None = None, detached: bool = False) -> TurnRecord:
        """Open a turn record.

        A detached record neither bumps the generation nor replaces the
        current turn, so it cannot make an in-flight turn stale.
        """
        if not detached:
            self._generation += 1
        record = TurnRecord(
            turn_id=f"turn_{uuid.uuid4().hex[:20]}",
            generation=self._generation,
            listener=listener,
        )
        if not detached:
            self._current = record
        if listener is not None:
            listener(record.state)
        return record

    def invalidate(self) -> None:
        # Every open turn becomes stale at its next check.
        self._generation += 1
        self._current = None

    def is_current(self, record: TurnRecord) -> bool:
        return record.generation == self._generation

    def transition(self, record: TurnRecord, next_state: str) -> list[str]:
        current = record.state
        allowed_next = self._TRANSITIONS.get(current, set())
        if next_state not in allowed_next:
            raise TurnLifecycleError(f"Invalid transition: {current} -> {next_state}")
        record.lifecycle.append(next_state)
        if record.listener is not None:
            record.listener(next_state)
        return list(record.lifecycle)

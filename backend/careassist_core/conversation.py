from __future__ import annotations

from typing import Iterator

from .models import Message, Notice


class ConversationLog:
    """Ordered, append-only message log for one session."""

    def __init__(self) -> None:
        self._messages: list[Message] = []
        self._ids: set[str] = set()
        self.closed = False

    def append(self, message: Message) -> Message:
        if self.closed:
            raise RuntimeError("Conversation has ended.")
        if message.id in self._ids:
            raise ValueError(f"Message already logged: {message.id}")
        self._messages.append(message)
        self._ids.add(message.id)
        return message

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def by_sender(self, sender: str) -> list[Message]:
        return [message for message in self._messages if message.sender == sender]

    def close(self) -> None:
        self._messages.clear()
        self._ids.clear()
        self.closed = True

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))


class NoticeBoard:
    def __init__(self) -> None:
        self._notices: list[Notice] = []
        self._once_codes: set[str] = set()

    def emit(self, code: str, text: str, *, once_per_session: bool = False) -> Notice | None:
        if once_per_session:
            if code in self._once_codes:
                return None
            self._once_codes.add(code)
        notice = Notice(code=code, text=text)
        self._notices.append(notice)
        return notice

    def dismiss(self, notice_id: str) -> Notice:
        for notice in self._notices:
            if notice.id == notice_id:
                if notice.dismissible:
                    notice.dismissed = True
                return notice
        raise KeyError(f"Notice not found: {notice_id}")

    def active(self) -> list[Notice]:
        return [notice for notice in self._notices if not notice.dismissed]

    @property
    def all(self) -> list[Notice]:
        return list(self._notices)

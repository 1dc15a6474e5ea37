"""Bounded conversation window for the extraction agent.

The transcript is append-only and lives for one extraction. ``tail()`` hands
the model a recent slice of it, widened backwards so that a ``tool`` message
is never sent without the assistant turn that requested it.
"""

from __future__ import annotations

from typing import Any, Iterable

from pydantic import ValidationError

from provider_scout.agents.models import (
    AssistantMessage,
    Message,
    SystemMessage,
    ToolMessage,
    UserMessage,
    message_adapter,
)
from provider_scout.utils.logging import get_logger

log = get_logger()

TOOL_CONTENT_MAX = 16000


class ConversationWindow:
    def __init__(self, tool_content_max: int = TOOL_CONTENT_MAX):
        self._tool_content_max = tool_content_max
        self._messages: list[Message] = []

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    def reset(self) -> None:
        self._messages = []

    def append(self, messages: Iterable[Any]) -> None:
        """Append messages, silently dropping malformed records.

        Accepts message models or plain dicts. A dict without a ``role`` key,
        or one that does not validate as any message variant, is discarded.
        """
        for raw in messages:
            msg = self._coerce(raw)
            if msg is None:
                continue
            self._messages.append(self._bound(msg))

    def tail(self, limit: int | None = None) -> list[Message]:
        """Return the last ``limit`` messages (default 1), never orphaning a tool reply."""
        limit = 1 if limit is None else max(limit, 1)
        total = len(self._messages)
        if total <= limit:
            return list(self._messages)

        owners = self._tool_call_owners()
        start = total - limit
        # Widen until no tool message in [start:] points before start.
        # Each pass either moves start strictly left or stops, so at most
        # `total` passes run.
        changed = True
        while changed:
            changed = False
            for msg in self._messages[start:]:
                if not isinstance(msg, ToolMessage) or not msg.tool_call_id:
                    continue
                owner = owners.get(msg.tool_call_id)
                if owner is not None and owner < start:
                    start = owner
                    changed = True
                    break
        return self._messages[start:]

    def _tool_call_owners(self) -> dict[str, int]:
        """Map each tool-call id to the index of the first assistant turn that declared it."""
        owners: dict[str, int] = {}
        for index, msg in enumerate(self._messages):
            if isinstance(msg, AssistantMessage):
                for call in msg.tool_calls:
                    owners.setdefault(call.id, index)
        return owners

    def _bound(self, msg: Message) -> Message:
        if not isinstance(msg, ToolMessage) or not isinstance(msg.content, str):
            return msg
        content = msg.content
        if len(content) <= self._tool_content_max:
            return msg
        # Stored text (kept prefix + marker) stays within the limit, and the
        # marker reports exactly how many characters were cut.
        keep = self._tool_content_max
        while True:
            marker = f"\n...[truncated {len(content) - keep} chars]"
            if keep == 0 or keep + len(marker) <= self._tool_content_max:
                break
            keep = max(self._tool_content_max - len(marker), 0)
        return msg.model_copy(update={"content": content[:keep] + marker})

    @staticmethod
    def _coerce(raw: Any) -> Message | None:
        if isinstance(raw, (SystemMessage, UserMessage, AssistantMessage, ToolMessage)):
            return raw
        if not isinstance(raw, dict) or "role" not in raw:
            return None
        try:
            return message_adapter.validate_python(raw)
        except ValidationError as e:
            log.debug(f"Dropping malformed {raw.get('role')!r} message: {e.error_count()} error(s)")
            return None

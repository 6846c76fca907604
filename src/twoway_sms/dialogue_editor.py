"""In-place editing of transcript entries for demo scripting."""

from typing import Callable, Optional

from .models import ConversationSession, Message, Sender


class DialogueEditError(KeyError):
    """Raised when the edited message does not exist."""


class DialogueEditor:
    """Rewrites text and options of existing messages.

    Entries are never removed or reordered. Options are only editable on
    user messages; a bot message keeps the options it was sent with.
    """

    def __init__(
        self,
        session_provider: Callable[[], ConversationSession],
        on_change: Optional[Callable[[], None]] = None,
    ):
        self._session_provider = session_provider
        self._on_change = on_change

    def _find(self, message_id: str) -> Message:
        for message in self._session_provider().messages:
            if message.id == message_id:
                return message
        raise DialogueEditError(message_id)

    def _changed(self) -> None:
        if self._on_change:
            self._on_change()

    def save(self, message_id: str, text: str, options: Optional[list[str]] = None) -> Message:
        message = self._find(message_id)
        message.text = text.strip()
        if message.sender is Sender.USER and options is not None:
            cleaned = [option.strip() for option in options if option.strip()]
            message.options = cleaned or None
        self._changed()
        return message

    def remove_option(self, message_id: str, index: int) -> Message:
        message = self._find(message_id)
        if message.sender is not Sender.USER or not message.options:
            return message
        if 0 <= index < len(message.options):
            del message.options[index]
            if not message.options:
                message.options = None
            self._changed()
        return message

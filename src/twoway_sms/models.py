"""Domain models for the two-way SMS simulator."""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional


class ConversationState(Enum):
    """States in the conversation flow."""
    # Webform and product question
    INITIAL = "initial"
    CALLING = "calling"
    CALL_ACCEPTED = "call_accepted"
    CALL_DECLINED = "call_declined"
    WAITING_FOR_RESPONSE = "waiting_for_response"
    SCHEDULING_TIME = "scheduling_time"
    TIME_SCHEDULED = "time_scheduled"
    ASKING_BETTER_TIME = "asking_better_time"
    ASKING_AFTER_CANCEL = "asking_after_cancel"
    FOLLOWUP_NEXT_DAY = "followup_next_day"
    UNKNOWN = "unknown"
    ENDED = "ended"
    # Confirm visit
    CONFIRM_VISIT_INITIAL = "confirm_visit_initial"
    CONFIRM_VISIT_WAITING = "confirm_visit_waiting"
    CONFIRM_VISIT_CONFIRMED = "confirm_visit_confirmed"
    CONFIRM_VISIT_RESCHEDULE_QUESTION = "confirm_visit_reschedule_question"
    CONFIRM_VISIT_RESCHEDULE_WAITING = "confirm_visit_reschedule_waiting"
    CONFIRM_VISIT_RESCHEDULE_SELECTING_TIME = "confirm_visit_reschedule_selecting_time"
    CONFIRM_VISIT_CANCELLED = "confirm_visit_cancelled"
    CONFIRM_VISIT_DNC = "confirm_visit_dnc"

    @property
    def is_confirm_visit(self) -> bool:
        return self.value.startswith("confirm_visit_")


class Workflow(Enum):
    """Top-level conversation scenarios."""
    WEBFORM = "webform"
    PRODUCT_QUESTION = "product question"
    CONFIRM_VISIT = "confirm visit"


class WorkflowVersion(Enum):
    """Webform variants. Version B skips the interest-form text."""
    A = "A"
    B = "B"


class ResponseCategory(Enum):
    """Canonical intents. The value is the option label dispatched."""
    YES = "Yes"
    CALL_AT_DIFFERENT_TIME = "Call at a different time"
    NO = "No"
    NO_RESPONSE_24H = "24 hours later (No response)"
    DO_NOT_CONTACT = "Do not contact"
    UNKNOWN_MESSAGE = "Unknown message"


class Sender(Enum):
    BOT = "bot"
    USER = "user"


@dataclass
class Message:
    """A single entry in the conversation log."""
    text: str
    sender: Sender
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=datetime.now)
    options: Optional[list[str]] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "sender": self.sender.value,
            "timestamp": self.timestamp.isoformat(),
            "options": list(self.options) if self.options else None,
        }


@dataclass
class PickerDefaults:
    """Initial values shown when the date/time picker opens."""
    date: date
    hour: int
    minute: int
    ampm: str


@dataclass
class ScheduledSlot:
    """A validated call-back or visit time."""
    at: datetime
    date_label: str
    time_label: str


@dataclass
class ConversationSession:
    """Runtime session state for one UI instance (not persisted)."""
    session_id: str
    workflow: Workflow = Workflow.WEBFORM
    version: WorkflowVersion = WorkflowVersion.A
    state: ConversationState = ConversationState.INITIAL
    messages: list[Message] = field(default_factory=list)
    scheduled_at: Optional[datetime] = None
    has_opted_out: bool = False
    is_after_24h_followup: bool = False
    ai_enabled: bool = False
    picker_open: bool = False
    picker_defaults: Optional[PickerDefaults] = None
    time_passing: bool = False
    classifying: bool = False
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        """Snapshot consumed by the transcript and diagram renderers."""
        defaults = None
        if self.picker_open and self.picker_defaults:
            defaults = {
                "date": self.picker_defaults.date.isoformat(),
                "hour": self.picker_defaults.hour,
                "minute": f"{self.picker_defaults.minute:02d}",
                "ampm": self.picker_defaults.ampm,
            }
        return {
            "session_id": self.session_id,
            "workflow": self.workflow.value,
            "version": self.version.value,
            "state": self.state.value,
            "messages": [message.to_dict() for message in self.messages],
            "scheduled_at": self.scheduled_at.isoformat() if self.scheduled_at else None,
            "has_opted_out": self.has_opted_out,
            "ai_enabled": self.ai_enabled,
            "picker_open": self.picker_open,
            "picker_defaults": defaults,
            "time_passing": self.time_passing,
            "classifying": self.classifying,
        }

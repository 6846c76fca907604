"""Conversation orchestrator driving the workflow transition tables."""

import uuid
from datetime import date, datetime
from typing import Callable, Optional, Protocol, Union

from .classifier.rules import is_confirm_visit_intent
from .config.settings import LeadSettings, TimingSettings
from .models import (
    ConversationSession,
    ConversationState,
    Message,
    ResponseCategory,
    ScheduledSlot,
    Sender,
    Workflow,
    WorkflowVersion,
)
from .scheduler import Scheduler, TimerHandle
from .scheduling import SchedulingValidator, format_date_time_label, visit_time
from .workflows import (
    DEFINITIONS,
    DISCLOSURE_MESSAGE,
    YES_NO,
    Delay,
    Effect,
    Transition,
    Trigger,
    WorkflowDefinition,
)

Listener = Callable[[ConversationSession], None]


class Classifier(Protocol):
    async def classify(self, text: str, ai_enabled: bool) -> ResponseCategory: ...


class ConversationOrchestrator:
    """Owns the live session and applies events to the active workflow."""

    STOP_KEYWORD = "STOP"

    def __init__(
        self,
        classifier: Classifier,
        scheduler: Scheduler,
        timing: Optional[TimingSettings] = None,
        lead: Optional[LeadSettings] = None,
        validator: Optional[SchedulingValidator] = None,
        clock: Callable[[], datetime] = datetime.now,
        session_id: Optional[str] = None,
        definitions: Optional[dict[Workflow, WorkflowDefinition]] = None,
    ):
        self.classifier = classifier
        self.scheduler = scheduler
        self.timing = timing or TimingSettings()
        self.lead = lead or LeadSettings()
        self.validator = validator or SchedulingValidator()
        self.clock = clock
        self.definitions = definitions or DEFINITIONS
        self.session = ConversationSession(session_id=session_id or str(uuid.uuid4()))
        self._generation = 0
        self._timers: set[TimerHandle] = set()
        # Deferred state changes still waiting on a timer.
        self._holds = 0
        self._listeners: list[Listener] = []

    @property
    def definition(self) -> WorkflowDefinition:
        return self.definitions[self.session.workflow]

    @property
    def _tag(self) -> str:
        return f"[SESSION {self.session.session_id[:8]}]"

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in self._listeners:
            listener(self.session)

    # Lifecycle

    def start(self) -> None:
        """Open the conversation for the selected workflow."""
        self.session.state = self.definition.initial_state
        self._notify()
        self._dispatch(Trigger.START)

    def reset(self) -> None:
        """Replace the session, dropping every pending timer and classification."""
        previous = self.session
        self._invalidate_pending()
        self.session = ConversationSession(
            session_id=previous.session_id,
            workflow=previous.workflow,
            version=previous.version,
            ai_enabled=previous.ai_enabled,
        )
        self.start()

    def close(self) -> None:
        """Stop all pending simulated delays."""
        self._invalidate_pending()

    def select_workflow(self, workflow: Workflow) -> None:
        self.session.workflow = workflow
        self.session.version = WorkflowVersion.A
        self.reset()

    def select_version(self, version: WorkflowVersion) -> None:
        if version is self.session.version:
            return
        self.session.version = version
        self.reset()

    def toggle_ai(self) -> None:
        self.session.ai_enabled = not self.session.ai_enabled
        self.reset()

    # Message log

    def append_user_message(self, text: str) -> Message:
        message = Message(text=text, sender=Sender.USER, timestamp=self.clock())
        self.session.messages.append(message)
        self._notify()
        return message

    def append_bot_message(self, text: str, options: Optional[list[str]] = None) -> Optional[Message]:
        """Append a bot message unless the lead has opted out."""
        session = self.session
        if session.has_opted_out:
            return None
        if not any(m.sender is Sender.BOT for m in session.messages):
            session.messages.append(
                Message(text=DISCLOSURE_MESSAGE, sender=Sender.BOT, timestamp=self.clock())
            )
        message = Message(
            text=text,
            sender=Sender.BOT,
            timestamp=self.clock(),
            options=list(options) if options else None,
        )
        session.messages.append(message)
        self._notify()
        return message

    # Events

    def submit_option(self, label: str) -> bool:
        """Apply a selected option. Returns False when the state ignores it."""
        return self._dispatch(label, echo=True)

    async def submit_free_text(self, text: str) -> None:
        """Handle typed text: opt-out, workflow switch, or classify and dispatch."""
        text = text.strip()
        if not text:
            return
        session = self.session

        if text.upper() == self.STOP_KEYWORD:
            self.append_user_message(text)
            session.has_opted_out = True
            print(f"{self._tag} Lead opted out")
            self._notify()
            return

        if session.classifying:
            print(f"{self._tag} Classification in progress, input dropped ({len(text)} chars)")
            return

        if session.workflow is Workflow.WEBFORM and is_confirm_visit_intent(text):
            self.append_user_message(text)
            self._switch_to_confirm_visit()
            return

        self.append_user_message(text)
        generation = self._generation
        session.classifying = True
        self._notify()
        try:
            category = await self.classifier.classify(text, ai_enabled=session.ai_enabled)
        finally:
            session.classifying = False

        if generation != self._generation:
            print(f"{self._tag} Dropping stale classification")
            return
        self._notify()
        self.submit_option(category.value)

    def accept_call(self) -> bool:
        return self._dispatch(Trigger.ACCEPT_CALL)

    def decline_call(self) -> bool:
        return self._dispatch(Trigger.DECLINE_CALL)

    def end_call(self) -> bool:
        return self._dispatch(Trigger.END_CALL)

    def confirm_date_time(
        self,
        day: Union[date, str],
        hour: int,
        minute: int,
        ampm: str,
    ) -> Optional[ScheduledSlot]:
        """Schedule the picked time.

        Raises SchedulingError for times outside business hours; the state
        and the open picker are left untouched so the lead can retry.
        """
        transition = self._find(Trigger.CONFIRM_TIME)
        if transition is None:
            print(f"{self._tag} No date/time picker open in {self.session.state.value}")
            return None

        slot = self.validator.validate(day, hour, minute, ampm)
        self.session.scheduled_at = slot.at
        self.session.picker_open = False
        self._apply(transition, {"scheduledDate": slot.date_label, "scheduledTime": slot.time_label})
        return slot

    def cancel_date_time(self) -> bool:
        transition = self._find(Trigger.CANCEL_TIME)
        if transition is None:
            return False
        self.session.picker_open = False
        self._apply(transition)
        return True

    # Transition interpreter

    def _find(self, trigger: str) -> Optional[Transition]:
        return self.definition.find(self.session.state, trigger, self.session)

    @property
    def settling(self) -> bool:
        """True while a state change is scheduled but has not landed yet."""
        return self.session.time_passing or self._holds > 0

    def _dispatch(self, trigger: str, echo: bool = False) -> bool:
        if self.settling:
            print(f"{self._tag} Ignored '{trigger}' while {self.session.state.value} is settling")
            return False
        transition = self._find(trigger)
        if transition is None:
            print(f"{self._tag} Ignored '{trigger}' in {self.session.state.value}")
            return False
        if echo:
            self.append_user_message(trigger)
        self._apply(transition)
        return True

    def _apply(self, transition: Transition, context: Optional[dict[str, str]] = None) -> None:
        session = self.session
        if transition.effect is Effect.TIME_PASSES:
            self._pass_24_hours()
            return

        if transition.clears_followup:
            session.is_after_24h_followup = False
        if transition.target is not None:
            session.state = transition.target
        self._notify()

        opens_picker = transition.effect is Effect.OPEN_PICKER
        if transition.messages or transition.settle is not None or opens_picker:
            self._after(
                transition.delay,
                lambda: self._emit(transition, context or {}),
                hold=transition.settle is not None or opens_picker,
            )
        if transition.ring is not None:
            self._after(transition.ring, self._ring, hold=True)

    def _emit(self, transition: Transition, context: dict[str, str]) -> None:
        values = self._template_values(context)
        last = len(transition.messages) - 1
        for index, template in enumerate(transition.messages):
            options = list(transition.options) if index == last and transition.options else None
            self.append_bot_message(template.format_map(values), options)
        if transition.settle is not None:
            self.session.state = transition.settle
        if transition.effect is Effect.OPEN_PICKER:
            self.session.picker_open = True
            self.session.picker_defaults = self.validator.default_selection(self.clock())
        if transition.settle is not None or transition.effect is Effect.OPEN_PICKER:
            self._notify()

    def _ring(self) -> None:
        self.session.state = ConversationState.CALLING
        self._notify()

    def _pass_24_hours(self) -> None:
        """Fast-forward a day, then resume with the follow-up question."""
        session = self.session
        followup = self.definition.followup_message or ""
        session.time_passing = True
        self._notify()

        def elapsed() -> None:
            session.time_passing = False
            self.append_bot_message(DISCLOSURE_MESSAGE)
            self.append_bot_message(followup)
            session.state = ConversationState.FOLLOWUP_NEXT_DAY
            session.is_after_24h_followup = True
            self._notify()
            self._after(Delay.MESSAGE, lambda: self.append_bot_message("", list(YES_NO)), hold=True)

        self._after_seconds(self.timing.time_passing_seconds + self.timing.message_delay, elapsed)

    def _switch_to_confirm_visit(self) -> None:
        """Hand the conversation over to the confirm-visit script, keeping the log."""
        self._invalidate_pending()
        session = self.session
        session.workflow = Workflow.CONFIRM_VISIT
        session.version = WorkflowVersion.A
        session.is_after_24h_followup = False
        session.picker_open = False
        session.time_passing = False
        print(f"{self._tag} Switching to confirm visit workflow")
        self.start()

    def _template_values(self, extra: dict[str, str]) -> dict[str, str]:
        values = {
            "fName": self.lead.first_name,
            "address": self.lead.visit_address,
            "dateTime": format_date_time_label(
                visit_time(self.clock(), self.lead.visit_days_ahead)
            ),
        }
        values.update(extra)
        return values

    # Timers

    def _after(self, delay: Delay, callback: Callable[[], None], hold: bool = False) -> None:
        seconds = {
            Delay.NONE: 0.0,
            Delay.MESSAGE: self.timing.message_delay,
            Delay.RING: self.timing.ring_delay,
        }[delay]
        self._after_seconds(seconds, callback, hold)

    def _after_seconds(self, seconds: float, callback: Callable[[], None], hold: bool = False) -> None:
        """Run callback later. A held timer blocks option triggers until it fires."""
        seconds *= self.timing.delay_scale
        if seconds <= 0:
            callback()
            return

        generation = self._generation
        handle: Optional[TimerHandle] = None

        def fire() -> None:
            self._timers.discard(handle)
            if generation != self._generation:
                return
            if hold:
                self._holds -= 1
            callback()

        if hold:
            self._holds += 1
        handle = self.scheduler.call_later(seconds, fire)
        self._timers.add(handle)

    def _invalidate_pending(self) -> None:
        self._generation += 1
        self._holds = 0
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()

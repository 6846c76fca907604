"""Transition tables for the three conversation workflows.

Each workflow is data: an ordered tuple of transitions keyed by the state
they leave and the option label (or call-screen/picker trigger) that fires
them. The orchestrator interprets every table the same way.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .models import ConversationSession, ConversationState, ResponseCategory, Workflow, WorkflowVersion

S = ConversationState

DISCLOSURE_MESSAGE = (
    "Hi, I'm ADT's Digital Assistant powered by AI! This chat may be monitored "
    "or recorded. Msg&DataRatesApply. STOP2end"
)
UNKNOWN_HANDOFF_MESSAGE = "Unknown message received, transferring to messaging agent."

YES = ResponseCategory.YES.value
NO = ResponseCategory.NO.value
YES_NO = (YES, NO)
ALL_RESPONSES = tuple(category.value for category in ResponseCategory)

CANCEL_APPOINTMENT = "Cancel Appointment"
DNC = "DNC"
CONFIRM_VISIT_OPTIONS = (YES, NO, CANCEL_APPOINTMENT, DNC, ResponseCategory.UNKNOWN_MESSAGE.value)


class Trigger:
    """Non-option events. Bracketed so they never collide with a label."""
    START = "[start]"
    ACCEPT_CALL = "[accept call]"
    DECLINE_CALL = "[decline call]"
    END_CALL = "[end call]"
    CONFIRM_TIME = "[confirm time]"
    CANCEL_TIME = "[cancel time]"


class Delay(Enum):
    NONE = "none"
    MESSAGE = "message"
    RING = "ring"


class Effect(Enum):
    NONE = "none"
    OPEN_PICKER = "open_picker"
    TIME_PASSES = "time_passes"


class Guard(Enum):
    VERSION_A = "version_a"
    AFTER_24H = "after_24h"

    def holds(self, session: ConversationSession) -> bool:
        match self:
            case Guard.VERSION_A:
                return session.version is WorkflowVersion.A
            case Guard.AFTER_24H:
                return session.is_after_24h_followup


@dataclass(frozen=True)
class Transition:
    """One edge of a workflow's state machine."""
    source: ConversationState
    trigger: str
    target: Optional[ConversationState] = None
    messages: tuple[str, ...] = ()
    options: tuple[str, ...] = ()
    delay: Delay = Delay.NONE
    settle: Optional[ConversationState] = None
    ring: Optional[Delay] = None
    effect: Effect = Effect.NONE
    guard: Optional[Guard] = None
    clears_followup: bool = False


@dataclass(frozen=True)
class WorkflowDefinition:
    workflow: Workflow
    initial_state: ConversationState
    transitions: tuple[Transition, ...]
    followup_message: Optional[str] = None

    def find(
        self, state: ConversationState, trigger: str, session: ConversationSession
    ) -> Optional[Transition]:
        """First transition out of state for trigger whose guard holds."""
        for transition in self.transitions:
            if transition.source is not state or transition.trigger != trigger:
                continue
            if transition.guard is None or transition.guard.holds(session):
                return transition
        return None

    def accepts(self, state: ConversationState) -> set[str]:
        return {t.trigger for t in self.transitions if t.source is state}

    @property
    def states(self) -> set[ConversationState]:
        states = {self.initial_state}
        for t in self.transitions:
            states.update(s for s in (t.source, t.target, t.settle) if s is not None)
        if any(t.effect is Effect.TIME_PASSES for t in self.transitions):
            states.add(S.FOLLOWUP_NEXT_DAY)
        if any(t.ring is not None for t in self.transitions):
            states.add(S.CALLING)
        return states


def _callback_transitions(
    opening: str, callback_question: str, versioned_opening: bool
) -> tuple[Transition, ...]:
    """Call, decline, ask for a callback, schedule or follow up a day later."""
    opening_guard = Guard.VERSION_A if versioned_opening else None
    transitions = [
        Transition(S.INITIAL, Trigger.START, messages=(opening,), ring=Delay.RING,
                   guard=opening_guard),
    ]
    if versioned_opening:
        transitions.append(Transition(S.INITIAL, Trigger.START, ring=Delay.RING))

    transitions += [
        Transition(S.CALLING, Trigger.ACCEPT_CALL, S.CALL_ACCEPTED),
        Transition(S.CALLING, Trigger.DECLINE_CALL, S.CALL_DECLINED,
                   messages=(callback_question,), options=ALL_RESPONSES,
                   delay=Delay.MESSAGE, settle=S.WAITING_FOR_RESPONSE),
        # State stays call_accepted after hanging up.
        Transition(S.CALL_ACCEPTED, Trigger.END_CALL,
                   messages=("Thank you for calling us! We will keep in contact using this number.",)),
    ]

    for source in (S.WAITING_FOR_RESPONSE, S.FOLLOWUP_NEXT_DAY):
        transitions += [
            Transition(source, YES, S.SCHEDULING_TIME, effect=Effect.OPEN_PICKER,
                       guard=Guard.AFTER_24H, clears_followup=True),
            Transition(source, YES, ring=Delay.MESSAGE),
            Transition(source, ResponseCategory.CALL_AT_DIFFERENT_TIME.value, S.SCHEDULING_TIME,
                       effect=Effect.OPEN_PICKER),
            Transition(source, NO, effect=Effect.TIME_PASSES, guard=Guard.AFTER_24H),
            Transition(source, NO, S.ASKING_BETTER_TIME,
                       messages=("Is there a better time that we can call you?",),
                       options=YES_NO, delay=Delay.MESSAGE),
            Transition(source, ResponseCategory.NO_RESPONSE_24H.value, effect=Effect.TIME_PASSES),
            Transition(source, ResponseCategory.DO_NOT_CONTACT.value, S.ENDED,
                       messages=("Have a nice day!",)),
            Transition(source, ResponseCategory.UNKNOWN_MESSAGE.value, S.UNKNOWN,
                       messages=(UNKNOWN_HANDOFF_MESSAGE,)),
        ]

    transitions += [
        Transition(S.ASKING_BETTER_TIME, YES, S.SCHEDULING_TIME, effect=Effect.OPEN_PICKER),
        Transition(S.ASKING_BETTER_TIME, NO, effect=Effect.TIME_PASSES),
        Transition(S.SCHEDULING_TIME, Trigger.CONFIRM_TIME, S.TIME_SCHEDULED,
                   messages=("We will call you again on {scheduledDate} at {scheduledTime}.",)),
        Transition(S.SCHEDULING_TIME, Trigger.CANCEL_TIME, S.ASKING_AFTER_CANCEL,
                   messages=("No date and time selected. Would you like to select a date "
                             "and time for us to call you back?",),
                   options=YES_NO, delay=Delay.MESSAGE),
        Transition(S.ASKING_AFTER_CANCEL, YES, effect=Effect.OPEN_PICKER, delay=Delay.MESSAGE,
                   settle=S.SCHEDULING_TIME),
        Transition(S.ASKING_AFTER_CANCEL, NO, effect=Effect.TIME_PASSES),
    ]
    return tuple(transitions)


WEBFORM = WorkflowDefinition(
    workflow=Workflow.WEBFORM,
    initial_state=S.INITIAL,
    transitions=_callback_transitions(
        opening="We received your interest form! We are calling now.",
        callback_question=("Hello, we just called to reach out about our product! "
                           "Would you like us to call you back?"),
        versioned_opening=True,
    ),
    followup_message=("Hello, we called yesterday to reach out about our product! "
                      "Would you like to schedule a time for us to call you?"),
)

PRODUCT_QUESTION = WorkflowDefinition(
    workflow=Workflow.PRODUCT_QUESTION,
    initial_state=S.INITIAL,
    transitions=_callback_transitions(
        opening="We received your product question! We are calling now to help.",
        callback_question=("Hello, we received your product question. "
                           "Would you like us to call you back to help?"),
        versioned_opening=False,
    ),
    followup_message=("Hello, we called yesterday about your product question. "
                      "Would you like to schedule a time for us to call you?"),
)

_RESCHEDULE_QUESTION = "Is there a better time we could reschedule the appointment for?"

CONFIRM_VISIT = WorkflowDefinition(
    workflow=Workflow.CONFIRM_VISIT,
    initial_state=S.CONFIRM_VISIT_INITIAL,
    transitions=(
        Transition(S.CONFIRM_VISIT_INITIAL, Trigger.START,
                   messages=("Hey {fName}, you have a consultation scheduled for {dateTime} "
                             "at {address}. A certified technician will be arriving. "
                             "Will you be available for this appointment?",),
                   options=CONFIRM_VISIT_OPTIONS, delay=Delay.MESSAGE,
                   settle=S.CONFIRM_VISIT_WAITING),

        Transition(S.CONFIRM_VISIT_WAITING, YES, S.CONFIRM_VISIT_CONFIRMED,
                   messages=("Great! We will see you then.",), delay=Delay.MESSAGE),
        Transition(S.CONFIRM_VISIT_WAITING, NO, S.CONFIRM_VISIT_RESCHEDULE_QUESTION,
                   messages=(_RESCHEDULE_QUESTION,), options=YES_NO, delay=Delay.MESSAGE,
                   settle=S.CONFIRM_VISIT_RESCHEDULE_WAITING),
        Transition(S.CONFIRM_VISIT_WAITING, CANCEL_APPOINTMENT, S.CONFIRM_VISIT_RESCHEDULE_QUESTION,
                   messages=(_RESCHEDULE_QUESTION,), options=YES_NO, delay=Delay.MESSAGE,
                   settle=S.CONFIRM_VISIT_RESCHEDULE_WAITING),
        *(
            Transition(S.CONFIRM_VISIT_WAITING, label, S.CONFIRM_VISIT_DNC,
                       messages=("Your appointment has been canceled and you will no longer "
                                 "receive notifications from this number.",),
                       delay=Delay.MESSAGE)
            for label in (DNC, ResponseCategory.DO_NOT_CONTACT.value)
        ),
        Transition(S.CONFIRM_VISIT_WAITING, ResponseCategory.UNKNOWN_MESSAGE.value, S.UNKNOWN,
                   messages=(UNKNOWN_HANDOFF_MESSAGE,), delay=Delay.MESSAGE),

        Transition(S.CONFIRM_VISIT_RESCHEDULE_WAITING, YES,
                   S.CONFIRM_VISIT_RESCHEDULE_SELECTING_TIME, effect=Effect.OPEN_PICKER),
        Transition(S.CONFIRM_VISIT_RESCHEDULE_WAITING, NO, S.CONFIRM_VISIT_CANCELLED,
                   messages=("Your appointment has been canceled, please reach out if you "
                             "would like to reschedule.",),
                   delay=Delay.MESSAGE),
        Transition(S.CONFIRM_VISIT_RESCHEDULE_WAITING, ResponseCategory.UNKNOWN_MESSAGE.value,
                   S.UNKNOWN, messages=(UNKNOWN_HANDOFF_MESSAGE,), delay=Delay.MESSAGE),

        Transition(S.CONFIRM_VISIT_RESCHEDULE_SELECTING_TIME, Trigger.CONFIRM_TIME,
                   S.CONFIRM_VISIT_CONFIRMED,
                   messages=("Your appointment has been rescheduled for {scheduledDate} at "
                             "{scheduledTime}. We'll see you then!",)),
        # Cancelling the picker re-asks the reschedule question.
        Transition(S.CONFIRM_VISIT_RESCHEDULE_SELECTING_TIME, Trigger.CANCEL_TIME,
                   S.CONFIRM_VISIT_RESCHEDULE_WAITING,
                   messages=(_RESCHEDULE_QUESTION,), options=YES_NO, delay=Delay.MESSAGE),
    ),
)

DEFINITIONS: dict[Workflow, WorkflowDefinition] = {
    definition.workflow: definition
    for definition in (WEBFORM, PRODUCT_QUESTION, CONFIRM_VISIT)
}

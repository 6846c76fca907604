import asyncio
from datetime import date

import pytest

from twoway_sms.config.settings import TimingSettings
from twoway_sms.models import ConversationState, ResponseCategory, Sender, Workflow, WorkflowVersion
from twoway_sms.scheduler import ManualScheduler
from twoway_sms.scheduling import SchedulingError
from twoway_sms.state_machine import ConversationOrchestrator
from twoway_sms.workflows import DISCLOSURE_MESSAGE, UNKNOWN_HANDOFF_MESSAGE

S = ConversationState


def texts(orchestrator: ConversationOrchestrator) -> list[str]:
    return [m.text for m in orchestrator.session.messages]


def ring_and_decline(orchestrator: ConversationOrchestrator, scheduler: ManualScheduler) -> None:
    orchestrator.start()
    scheduler.run_all()
    assert orchestrator.session.state is S.CALLING
    assert orchestrator.decline_call()
    scheduler.run_all()
    assert orchestrator.session.state is S.WAITING_FOR_RESPONSE


def test_start_version_a_sends_disclosure_then_interest_form(orchestrator, scheduler):
    orchestrator.start()

    assert texts(orchestrator) == [
        DISCLOSURE_MESSAGE,
        "We received your interest form! We are calling now.",
    ]
    assert orchestrator.session.state is S.INITIAL

    scheduler.advance(1.5)
    assert orchestrator.session.state is S.CALLING


def test_start_version_b_rings_without_message(orchestrator, scheduler):
    orchestrator.session.version = WorkflowVersion.B
    orchestrator.start()
    scheduler.run_all()

    assert orchestrator.session.messages == []
    assert orchestrator.session.state is S.CALLING


def test_decline_asks_callback_question_with_six_options(orchestrator, scheduler):
    orchestrator.start()
    scheduler.run_all()

    orchestrator.decline_call()
    assert orchestrator.session.state is S.CALL_DECLINED

    scheduler.advance(0.5)
    last = orchestrator.session.messages[-1]
    assert last.sender is Sender.BOT
    assert last.options == [category.value for category in ResponseCategory]
    assert orchestrator.session.state is S.WAITING_FOR_RESPONSE


def test_decline_then_do_not_contact_ends(orchestrator, scheduler):
    ring_and_decline(orchestrator, scheduler)

    assert orchestrator.submit_option("Do not contact")

    assert orchestrator.session.state is S.ENDED
    assert texts(orchestrator)[-2:] == ["Do not contact", "Have a nice day!"]


def test_decline_no_no_reaches_followup_next_day(orchestrator, scheduler):
    ring_and_decline(orchestrator, scheduler)

    orchestrator.submit_option("No")
    assert orchestrator.session.state is S.ASKING_BETTER_TIME
    scheduler.run_all()
    assert texts(orchestrator)[-1] == "Is there a better time that we can call you?"

    orchestrator.submit_option("No")
    assert orchestrator.session.time_passing
    scheduler.run_all()

    session = orchestrator.session
    assert session.state is S.FOLLOWUP_NEXT_DAY
    assert session.is_after_24h_followup
    assert not session.time_passing
    assert texts(orchestrator)[-3:] == [
        DISCLOSURE_MESSAGE,
        "Hello, we called yesterday to reach out about our product! "
        "Would you like to schedule a time for us to call you?",
        "",
    ]
    assert session.messages[-1].options == ["Yes", "No"]


def test_yes_after_followup_opens_picker_and_clears_flag(orchestrator, scheduler):
    ring_and_decline(orchestrator, scheduler)
    orchestrator.submit_option("24 hours later (No response)")
    scheduler.run_all()
    assert orchestrator.session.is_after_24h_followup

    orchestrator.submit_option("Yes")

    assert orchestrator.session.state is S.SCHEDULING_TIME
    assert orchestrator.session.picker_open
    assert orchestrator.session.picker_defaults.hour == 10
    assert not orchestrator.session.is_after_24h_followup


def test_no_after_followup_loops_another_day(orchestrator, scheduler):
    ring_and_decline(orchestrator, scheduler)
    orchestrator.submit_option("24 hours later (No response)")
    scheduler.run_all()
    count = texts(orchestrator).count(DISCLOSURE_MESSAGE)

    orchestrator.submit_option("No")
    scheduler.run_all()

    assert orchestrator.session.state is S.FOLLOWUP_NEXT_DAY
    assert texts(orchestrator).count(DISCLOSURE_MESSAGE) == count + 1


def test_yes_before_followup_rings_again(orchestrator, scheduler):
    ring_and_decline(orchestrator, scheduler)

    orchestrator.submit_option("Yes")
    assert orchestrator.session.state is S.WAITING_FOR_RESPONSE
    scheduler.advance(0.5)

    assert orchestrator.session.state is S.CALLING


def test_schedule_a_callback(orchestrator, scheduler):
    ring_and_decline(orchestrator, scheduler)
    orchestrator.submit_option("Call at a different time")
    assert orchestrator.session.state is S.SCHEDULING_TIME

    slot = orchestrator.confirm_date_time(date(2026, 10, 20), 2, 30, "PM")

    assert orchestrator.session.state is S.TIME_SCHEDULED
    assert orchestrator.session.scheduled_at == slot.at
    assert not orchestrator.session.picker_open
    assert texts(orchestrator)[-1] == "We will call you again on Tuesday, October 20, 2026 at 2:30 PM."


def test_invalid_time_keeps_picker_open(orchestrator, scheduler):
    ring_and_decline(orchestrator, scheduler)
    orchestrator.submit_option("Call at a different time")
    before = len(orchestrator.session.messages)

    with pytest.raises(SchedulingError):
        orchestrator.confirm_date_time(date(2026, 10, 20), 5, 5, "PM")

    assert orchestrator.session.state is S.SCHEDULING_TIME
    assert orchestrator.session.picker_open
    assert orchestrator.session.scheduled_at is None
    assert len(orchestrator.session.messages) == before


def test_cancel_picker_then_reopen(orchestrator, scheduler):
    ring_and_decline(orchestrator, scheduler)
    orchestrator.submit_option("Call at a different time")

    assert orchestrator.cancel_date_time()
    scheduler.run_all()
    assert orchestrator.session.state is S.ASKING_AFTER_CANCEL
    assert orchestrator.session.messages[-1].options == ["Yes", "No"]

    assert orchestrator.submit_option("Yes")
    assert orchestrator.session.state is S.ASKING_AFTER_CANCEL
    assert not orchestrator.session.picker_open

    scheduler.advance(0.5)
    assert orchestrator.session.state is S.SCHEDULING_TIME
    assert orchestrator.session.picker_open


def test_repeated_no_during_time_passing_is_ignored(orchestrator, scheduler):
    ring_and_decline(orchestrator, scheduler)
    orchestrator.submit_option("No")
    scheduler.run_all()

    assert orchestrator.submit_option("No")
    before = texts(orchestrator)
    assert not orchestrator.submit_option("No")
    assert not orchestrator.submit_option("24 hours later (No response)")
    assert texts(orchestrator) == before

    scheduler.run_all()

    assert orchestrator.session.state is S.FOLLOWUP_NEXT_DAY
    assert texts(orchestrator).count(DISCLOSURE_MESSAGE) == 2
    assert texts(orchestrator).count("") == 1


def test_click_before_followup_options_arrive_is_ignored(orchestrator, scheduler):
    ring_and_decline(orchestrator, scheduler)
    orchestrator.submit_option("24 hours later (No response)")
    scheduler.advance(3.5)
    assert orchestrator.session.state is S.FOLLOWUP_NEXT_DAY

    assert not orchestrator.submit_option("Yes")

    scheduler.advance(0.5)
    assert orchestrator.session.messages[-1].options == ["Yes", "No"]
    assert orchestrator.submit_option("Yes")
    assert orchestrator.session.state is S.SCHEDULING_TIME


def test_double_yes_before_ring_rings_once(orchestrator, scheduler):
    ring_and_decline(orchestrator, scheduler)

    assert orchestrator.submit_option("Yes")
    assert not orchestrator.submit_option("Yes")
    assert scheduler.pending == 1
    assert texts(orchestrator).count("Yes") == 1

    scheduler.run_all()
    assert orchestrator.session.state is S.CALLING


def test_double_yes_after_cancel_opens_picker_once(orchestrator, scheduler):
    ring_and_decline(orchestrator, scheduler)
    orchestrator.submit_option("Call at a different time")
    orchestrator.cancel_date_time()
    scheduler.run_all()

    assert orchestrator.submit_option("Yes")
    assert not orchestrator.submit_option("Yes")
    scheduler.run_all()

    assert orchestrator.session.state is S.SCHEDULING_TIME
    assert scheduler.pending == 0


def test_reset_clears_pending_hold(orchestrator, scheduler):
    ring_and_decline(orchestrator, scheduler)
    orchestrator.submit_option("No")
    scheduler.run_all()
    orchestrator.submit_option("No")
    assert orchestrator.settling

    orchestrator.reset()
    scheduler.run_all()

    assert not orchestrator.settling
    assert orchestrator.decline_call()


def test_confirm_time_without_picker_is_ignored(orchestrator, scheduler):
    ring_and_decline(orchestrator, scheduler)

    assert orchestrator.confirm_date_time(date(2026, 10, 20), 10, 0, "AM") is None
    assert orchestrator.session.state is S.WAITING_FOR_RESPONSE


def test_accept_and_end_call_keeps_call_accepted(orchestrator, scheduler):
    orchestrator.start()
    scheduler.run_all()

    assert orchestrator.accept_call()
    assert orchestrator.end_call()

    assert orchestrator.session.state is S.CALL_ACCEPTED
    assert texts(orchestrator)[-1] == "Thank you for calling us! We will keep in contact using this number."


def test_stale_option_is_ignored(orchestrator, scheduler):
    ring_and_decline(orchestrator, scheduler)
    orchestrator.submit_option("Do not contact")
    before = texts(orchestrator)

    assert not orchestrator.submit_option("Yes")
    assert not orchestrator.submit_option("Cancel Appointment")

    assert texts(orchestrator) == before
    assert orchestrator.session.state is S.ENDED


def test_unknown_message_hands_off(orchestrator, scheduler):
    ring_and_decline(orchestrator, scheduler)

    orchestrator.submit_option("Unknown message")

    assert orchestrator.session.state is S.UNKNOWN
    assert texts(orchestrator)[-1] == UNKNOWN_HANDOFF_MESSAGE


def test_disclosure_precedes_first_bot_message_only(orchestrator, scheduler):
    ring_and_decline(orchestrator, scheduler)

    messages = orchestrator.session.messages
    assert messages[0].text == DISCLOSURE_MESSAGE
    assert [m.text for m in messages].count(DISCLOSURE_MESSAGE) == 1


def test_product_question_texts(orchestrator, scheduler):
    orchestrator.select_workflow(Workflow.PRODUCT_QUESTION)
    scheduler.run_all()
    orchestrator.decline_call()
    scheduler.run_all()

    assert texts(orchestrator) == [
        DISCLOSURE_MESSAGE,
        "We received your product question! We are calling now to help.",
        "Hello, we received your product question. Would you like us to call you back to help?",
    ]


def test_confirm_visit_start(orchestrator, scheduler):
    orchestrator.select_workflow(Workflow.CONFIRM_VISIT)
    assert orchestrator.session.state is S.CONFIRM_VISIT_INITIAL

    scheduler.advance(0.5)

    assert orchestrator.session.state is S.CONFIRM_VISIT_WAITING
    prompt = orchestrator.session.messages[-1]
    assert prompt.text == (
        "Hey John, you have a consultation scheduled for Tuesday, October 20, 2026 at 10:02 AM "
        "at 123 Main Street, Anytown, ST 12345. A certified technician will be arriving. "
        "Will you be available for this appointment?"
    )
    assert prompt.options == ["Yes", "No", "Cancel Appointment", "DNC", "Unknown message"]


def test_confirm_visit_reschedule_round_trip(orchestrator, scheduler):
    orchestrator.select_workflow(Workflow.CONFIRM_VISIT)
    scheduler.run_all()

    orchestrator.submit_option("No")
    assert orchestrator.session.state is S.CONFIRM_VISIT_RESCHEDULE_QUESTION
    scheduler.run_all()
    assert orchestrator.session.state is S.CONFIRM_VISIT_RESCHEDULE_WAITING

    orchestrator.submit_option("Yes")
    assert orchestrator.session.state is S.CONFIRM_VISIT_RESCHEDULE_SELECTING_TIME

    orchestrator.confirm_date_time(date(2026, 10, 22), 11, 15, "AM")

    assert orchestrator.session.state is S.CONFIRM_VISIT_CONFIRMED
    assert texts(orchestrator)[-1] == (
        "Your appointment has been rescheduled for Thursday, October 22, 2026 at 11:15 AM. "
        "We'll see you then!"
    )


def test_confirm_visit_cancel_picker_reasks_question(orchestrator, scheduler):
    orchestrator.select_workflow(Workflow.CONFIRM_VISIT)
    scheduler.run_all()
    orchestrator.submit_option("Cancel Appointment")
    scheduler.run_all()
    orchestrator.submit_option("Yes")

    orchestrator.cancel_date_time()
    assert orchestrator.session.state is S.CONFIRM_VISIT_RESCHEDULE_WAITING
    scheduler.run_all()

    assert texts(orchestrator)[-1] == "Is there a better time we could reschedule the appointment for?"
    orchestrator.submit_option("No")
    scheduler.run_all()
    assert orchestrator.session.state is S.CONFIRM_VISIT_CANCELLED


@pytest.mark.parametrize("label", ["DNC", "Do not contact"])
def test_confirm_visit_dnc(orchestrator, scheduler, label):
    orchestrator.select_workflow(Workflow.CONFIRM_VISIT)
    scheduler.run_all()

    orchestrator.submit_option(label)
    scheduler.run_all()

    assert orchestrator.session.state is S.CONFIRM_VISIT_DNC


def test_reset_drops_pending_timers(orchestrator, scheduler):
    orchestrator.start()
    scheduler.run_all()
    orchestrator.decline_call()

    orchestrator.reset()
    scheduler.run_all()

    # The decline question from the old session never lands.
    assert orchestrator.session.state is S.CALLING
    assert texts(orchestrator) == [
        DISCLOSURE_MESSAGE,
        "We received your interest form! We are calling now.",
    ]


def test_select_version_resets_only_on_change(orchestrator, scheduler):
    orchestrator.start()
    scheduler.run_all()
    session = orchestrator.session

    orchestrator.select_version(WorkflowVersion.A)
    assert orchestrator.session is session

    orchestrator.select_version(WorkflowVersion.B)
    assert orchestrator.session is not session
    assert orchestrator.session.version is WorkflowVersion.B
    assert orchestrator.session.messages == []


def test_toggle_ai_resets_and_keeps_flag(orchestrator, scheduler):
    orchestrator.start()
    orchestrator.toggle_ai()

    assert orchestrator.session.ai_enabled
    assert len(orchestrator.session.messages) == 2


def test_listeners_see_every_change(orchestrator, scheduler):
    states = []
    orchestrator.subscribe(lambda session: states.append(session.state))

    orchestrator.start()
    scheduler.run_all()

    assert states[0] is S.INITIAL
    assert states[-1] is S.CALLING


def test_zero_delay_scale_plays_instantly(classifier):
    scheduler = ManualScheduler()
    orchestrator = ConversationOrchestrator(
        classifier=classifier,
        scheduler=scheduler,
        timing=TimingSettings(delay_scale=0),
    )

    orchestrator.start()
    orchestrator.decline_call()

    assert scheduler.pending == 0
    assert orchestrator.session.state is S.WAITING_FOR_RESPONSE


# Free text


@pytest.mark.asyncio
async def test_free_text_is_classified_and_dispatched(orchestrator, scheduler, classifier):
    ring_and_decline(orchestrator, scheduler)
    classifier.category = ResponseCategory.DO_NOT_CONTACT
    orchestrator.session.ai_enabled = True

    await orchestrator.submit_free_text("  leave me alone  ")

    assert classifier.calls == [("leave me alone", True)]
    assert texts(orchestrator)[-3:] == ["leave me alone", "Do not contact", "Have a nice day!"]
    assert orchestrator.session.state is S.ENDED


@pytest.mark.asyncio
async def test_blank_free_text_is_a_no_op(orchestrator, scheduler, classifier):
    ring_and_decline(orchestrator, scheduler)
    before = texts(orchestrator)

    await orchestrator.submit_free_text("   ")

    assert texts(orchestrator) == before
    assert classifier.calls == []


@pytest.mark.asyncio
async def test_stop_opts_out_permanently(orchestrator, scheduler, classifier):
    ring_and_decline(orchestrator, scheduler)

    await orchestrator.submit_free_text("stop")
    assert orchestrator.session.has_opted_out
    assert classifier.calls == []
    before = len(orchestrator.session.messages)

    orchestrator.submit_option("No")
    scheduler.run_all()
    classifier.category = ResponseCategory.YES
    await orchestrator.submit_free_text("hello again")
    scheduler.run_all()

    bot_after = [m for m in orchestrator.session.messages[before:] if m.sender is Sender.BOT]
    assert bot_after == []
    assert orchestrator.append_bot_message("anything") is None


@pytest.mark.asyncio
async def test_confirm_visit_intent_switches_workflow(orchestrator, scheduler, classifier):
    orchestrator.session.ai_enabled = True
    ring_and_decline(orchestrator, scheduler)
    before = [(m.id, m.text) for m in orchestrator.session.messages]

    await orchestrator.submit_free_text("I'd like to confirm my appointment")

    session = orchestrator.session
    assert session.workflow is Workflow.CONFIRM_VISIT
    assert session.state is S.CONFIRM_VISIT_INITIAL
    assert classifier.calls == []

    scheduler.run_all()

    assert session.state is S.CONFIRM_VISIT_WAITING
    assert [(m.id, m.text) for m in session.messages[:len(before)]] == before
    assert session.messages[len(before)].text == "I'd like to confirm my appointment"
    assert session.messages[-1].options[0] == "Yes"


@pytest.mark.asyncio
async def test_switch_drops_pending_webform_timers(orchestrator, scheduler):
    orchestrator.start()

    await orchestrator.submit_free_text("I want to confirm my visit")
    scheduler.run_all()

    # The ring scheduled by the webform opening must not fire.
    assert orchestrator.session.state is S.CONFIRM_VISIT_WAITING


@pytest.mark.asyncio
async def test_confirm_intent_outside_webform_is_classified(orchestrator, scheduler, classifier):
    orchestrator.select_workflow(Workflow.PRODUCT_QUESTION)
    scheduler.run_all()

    await orchestrator.submit_free_text("I'd like to confirm my appointment")

    assert orchestrator.session.workflow is Workflow.PRODUCT_QUESTION
    assert len(classifier.calls) == 1


@pytest.mark.asyncio
async def test_second_submit_while_classifying_is_dropped(orchestrator, scheduler, classifier):
    ring_and_decline(orchestrator, scheduler)
    classifier.gate = asyncio.Event()
    classifier.category = ResponseCategory.NO

    first = asyncio.create_task(orchestrator.submit_free_text("nah"))
    await asyncio.sleep(0)
    assert orchestrator.session.classifying

    await orchestrator.submit_free_text("no thanks")
    classifier.gate.set()
    await first

    assert len(classifier.calls) == 1
    assert "no thanks" not in texts(orchestrator)
    assert orchestrator.session.state is S.ASKING_BETTER_TIME
    assert not orchestrator.session.classifying


@pytest.mark.asyncio
async def test_reset_discards_in_flight_classification(orchestrator, scheduler, classifier):
    ring_and_decline(orchestrator, scheduler)
    classifier.gate = asyncio.Event()
    classifier.category = ResponseCategory.DO_NOT_CONTACT

    pending = asyncio.create_task(orchestrator.submit_free_text("go away"))
    await asyncio.sleep(0)
    orchestrator.reset()
    classifier.gate.set()
    await pending

    assert orchestrator.session.state is S.INITIAL
    assert "Do not contact" not in texts(orchestrator)
    assert not orchestrator.session.classifying


@pytest.mark.asyncio
async def test_classified_label_not_accepted_in_state_is_ignored(orchestrator, scheduler, classifier):
    ring_and_decline(orchestrator, scheduler)
    orchestrator.submit_option("No")
    scheduler.run_all()
    classifier.category = ResponseCategory.CALL_AT_DIFFERENT_TIME

    await orchestrator.submit_free_text("friday")

    assert orchestrator.session.state is S.ASKING_BETTER_TIME
    assert texts(orchestrator)[-1] == "friday"

from alarm import normalize_alarm
from ringing import (
    CancelVibration, DismissPrompt, FiringStateMachine, NOTIFICATION_TITLE, PlaySound, PostNotification,
    PresentPrompt, RingingState, StartVibration, StopReason, StopSound, UnloadSound, VIBRATION_PATTERN,
)

from conftest import MONDAY, at


def make_alarm(time="07:30"):
    return normalize_alarm({"time": time, "repeatDays": ["Monday"]})


# --- FiringStateMachine ---

def test_machine_start_emits_intents_in_order():
    machine = FiringStateMachine()
    intents = machine.start(make_alarm(), at(MONDAY, 7, 30))
    assert intents == [
        PostNotification(title=NOTIFICATION_TITLE, body="It's 07:30"),
        StartVibration(pattern=VIBRATION_PATTERN, repeat=True),
        PlaySound(session_id=1),
        PresentPrompt(session_id=1, message="Alarm 07:30"),
    ]
    assert machine.state is RingingState.RINGING


def test_machine_start_while_ringing_cleans_up_previous_first():
    machine = FiringStateMachine()
    machine.start(make_alarm("07:30"), at(MONDAY, 7, 30))
    intents = machine.start(make_alarm("07:31"), at(MONDAY, 7, 31))
    assert intents[:4] == [StopSound(1), UnloadSound(1), CancelVibration(), DismissPrompt(1)]
    assert intents[4:6] == [
        PostNotification(title=NOTIFICATION_TITLE, body="It's 07:31"),
        StartVibration(pattern=VIBRATION_PATTERN, repeat=True),
    ]
    assert machine.session.session_id == 2


def test_machine_stop_when_idle_is_noop():
    assert FiringStateMachine().stop() == []


def test_machine_stop_for_other_session_is_noop():
    machine = FiringStateMachine()
    machine.start(make_alarm(), at(MONDAY, 7, 30))
    assert machine.stop(session_id=99) == []
    assert machine.state is RingingState.RINGING


def test_machine_expire_waits_for_timeout():
    machine = FiringStateMachine(ring_timeout=60)
    machine.start(make_alarm(), at(MONDAY, 7, 30))
    assert machine.expire(1, at(MONDAY, 7, 30, 59)) == []
    assert len(machine.expire(1, at(MONDAY, 7, 31, 0))) == 4
    assert machine.state is RingingState.IDLE


# --- AlarmRinger ---

def test_ring_dispatches_collaborators_and_arms_timeout(ringer, collaborators, timers):
    session = ringer.ring(make_alarm())
    assert collaborators.recorder.calls == [
        ("notify", NOTIFICATION_TITLE, "It's 07:30"),
        ("vibrate", VIBRATION_PATTERN, True),
        ("play", "alarm.wav", 101),
        ("prompt", "Alarm 07:30", 1),
    ]
    assert ringer.state is RingingState.RINGING
    assert ringer.session is session
    assert timers.last.interval == 60
    assert timers.last.started


def test_user_stop_releases_everything(ringer, collaborators, timers):
    ringer.ring(make_alarm())
    collaborators.recorder.calls.clear()
    assert ringer.stop() is True
    assert collaborators.recorder.calls == [
        ("stop", 101),
        ("unload", 101),
        ("cancel_vibration",),
        ("dismiss", 1),
    ]
    assert ringer.state is RingingState.IDLE
    assert timers.last.cancelled
    assert collaborators.audio.playing == set()


def test_stop_is_idempotent(ringer, collaborators):
    ringer.ring(make_alarm())
    assert ringer.stop() is True
    calls = list(collaborators.recorder.calls)
    assert ringer.stop() is False
    assert collaborators.recorder.calls == calls


def test_stop_when_idle_returns_false(ringer, collaborators):
    assert ringer.stop() is False
    assert collaborators.recorder.calls == []


def test_timeout_timer_stops_ringing(ringer, collaborators, timers):
    ringer.ring(make_alarm())
    timers.last.fire()
    assert ringer.state is RingingState.IDLE
    assert ("stop", 101) in collaborators.recorder.calls
    assert ("dismiss", 1) in collaborators.recorder.calls


def test_expire_without_force_compares_clock(ringer, clock):
    session = ringer.ring(make_alarm())
    clock.advance(seconds=30)
    assert ringer.expire(session.session_id) is False
    clock.advance(seconds=30)
    assert ringer.expire(session.session_id) is True
    assert ringer.state is RingingState.IDLE


def test_prompt_stop_button_stops_its_session(ringer, collaborators):
    ringer.ring(make_alarm())
    collaborators.prompt.press_stop(1)
    assert ringer.state is RingingState.IDLE
    assert ("unload", 101) in collaborators.recorder.calls


def test_new_alarm_supersedes_ringing_one(ringer, collaborators, timers):
    ringer.ring(make_alarm("07:30"))
    first_timer = timers.last
    collaborators.recorder.calls.clear()
    second = ringer.ring(make_alarm("07:31"))

    names = collaborators.recorder.names()
    # 이전 사운드가 해제된 뒤에 새 사운드가 재생됨
    assert names.index("unload") < names.index("play")
    assert collaborators.recorder.calls[0] == ("stop", 101)
    assert ("play", "alarm.wav", 102) in collaborators.recorder.calls
    assert collaborators.audio.playing == {102}
    assert first_timer.cancelled
    assert ringer.session is second


def test_stale_timer_and_prompt_do_not_stop_new_session(ringer, collaborators, timers):
    ringer.ring(make_alarm("07:30"))
    stale_timer = timers.last
    ringer.ring(make_alarm("07:31"))

    stale_timer.fire()
    collaborators.prompt.press_stop(1)

    assert ringer.state is RingingState.RINGING
    assert ringer.session.session_id == 2
    assert collaborators.audio.playing == {102}


def test_audio_failure_still_presents_prompt_and_stops_cleanly(ringer, collaborators):
    collaborators.audio.fail_on_play = True
    ringer.ring(make_alarm())
    assert "play" not in collaborators.recorder.names()
    assert "prompt" in collaborators.recorder.names()

    assert ringer.stop() is True
    assert ringer.state is RingingState.IDLE
    assert "stop" not in collaborators.recorder.names()
    assert ("dismiss", 1) in collaborators.recorder.calls


def test_listeners_receive_state_changes(ringer):
    events = []
    ringer.subscribe(events.append)
    first = ringer.ring(make_alarm("07:30"))
    second = ringer.ring(make_alarm("07:31"))
    ringer.stop()

    assert [(e.state, e.reason) for e in events] == [
        (RingingState.RINGING, None),
        (RingingState.IDLE, StopReason.SUPERSEDED),
        (RingingState.RINGING, None),
        (RingingState.IDLE, StopReason.USER),
    ]
    assert events[1].session is first
    assert events[2].session is second


def test_unsubscribe_and_failing_listener(ringer):
    events = []

    def broken(event):
        raise RuntimeError("listener bug")

    ringer.subscribe(broken)
    unsubscribe = ringer.subscribe(events.append)
    ringer.ring(make_alarm())
    unsubscribe()
    ringer.stop()
    assert len(events) == 1
    assert ringer.state is RingingState.IDLE


def test_timeout_event_reason(ringer, timers):
    events = []
    ringer.subscribe(events.append)
    ringer.ring(make_alarm())
    timers.last.fire()
    assert events[-1].reason is StopReason.TIMEOUT


def test_shutdown_stops_active_session(ringer, collaborators, timers):
    events = []
    ringer.subscribe(events.append)
    ringer.ring(make_alarm())
    ringer.shutdown()
    assert ringer.state is RingingState.IDLE
    assert events[-1].reason is StopReason.SHUTDOWN
    assert timers.last.cancelled
    assert collaborators.audio.playing == set()

import json

import pytest
import schedule

from config import AppConfig
from engine import AlarmClockEngine
from errors import ValidationError
from ringing import RingingState, StopReason
from storage import MemoryBlobStore

from conftest import MONDAY, at


@pytest.fixture
def engine(tmp_path, collaborators, clock, timers, blob_store):
    config = AppConfig(data_dir=str(tmp_path), sound_path="alarm.wav", ring_timeout=60)
    engine = AlarmClockEngine(
        config,
        notifier=collaborators.notifier,
        audio=collaborators.audio,
        vibrator=collaborators.vibrator,
        prompt=collaborators.prompt,
        clock=clock,
        blob_store=blob_store,
        timer_factory=timers,
        scheduler=schedule.Scheduler(),
    )
    yield engine
    engine.shutdown()


def test_start_loads_saved_alarms_and_rings_due_ones(tmp_path, collaborators, clock, timers):
    blob_store = MemoryBlobStore({"alarms": json.dumps([
        {"id": "a1", "time": "07:30", "repeatDays": ["Monday"], "enabled": True,
         "alternateWeeks": False, "startWeek": None, "excludedDates": []},
    ])})
    engine = AlarmClockEngine(
        AppConfig(data_dir=str(tmp_path)),
        notifier=collaborators.notifier, audio=collaborators.audio,
        vibrator=collaborators.vibrator, prompt=collaborators.prompt,
        clock=clock, blob_store=blob_store, timer_factory=timers, scheduler=schedule.Scheduler(),
    )
    try:
        alarms = engine.start(threaded=False)
        assert [alarm.id for alarm in alarms] == ["a1"]
        assert engine.ringing_state is RingingState.RINGING
        assert engine.ringer.session.alarm.id == "a1"
    finally:
        engine.shutdown()
    assert engine.ringing_state is RingingState.IDLE


def test_ui_operations_persist_through_store(engine, blob_store):
    engine.start(threaded=False)
    alarm = engine.add_alarm({"time": "06:00", "repeatDays": ["Friday"]})
    engine.add_alarm({"time": "06:00", "repeatDays": ["Saturday"]})
    engine.toggle_alarm("06:00")
    assert [a.enabled for a in engine.get_alarms()] == [False, False]

    engine.toggle_alarm_by_id(alarm.id)
    assert [a.enabled for a in engine.get_alarms()] == [True, False]

    removed = engine.delete_alarm(1)
    assert removed.repeat_days == {"Saturday"}
    assert engine.delete_alarm_by_id(alarm.id).id == alarm.id
    assert engine.get_alarms() == []
    engine.store.flush()
    assert json.loads(blob_store.get("alarms")) == []


def test_add_alarm_propagates_validation_error(engine):
    engine.start(threaded=False)
    with pytest.raises(ValidationError):
        engine.add_alarm({"time": "7pm"})
    assert engine.get_alarms() == []


def test_delete_out_of_range_is_ignored(engine):
    engine.start(threaded=False)
    engine.add_alarm({"time": "06:00"})
    assert engine.delete_alarm(5) is None
    assert len(engine.get_alarms()) == 1


def test_subscribe_and_stop_ringing(engine, clock):
    events = []
    engine.subscribe(events.append)
    engine.start(threaded=False)
    engine.add_alarm({"time": "07:30", "repeatDays": ["Monday"]})
    engine.poller.run_pass()
    assert engine.ringing_state is RingingState.RINGING

    assert engine.stop_ringing() is True
    assert engine.stop_ringing() is False
    assert [e.state for e in events] == [RingingState.RINGING, RingingState.IDLE]
    assert events[-1].reason is StopReason.USER


def test_shutdown_cancels_polling_and_stops_ringing(engine, collaborators):
    events = []
    engine.subscribe(events.append)
    engine.start(threaded=False)
    engine.add_alarm({"time": "07:30", "repeatDays": ["Monday"]})
    engine.poller.run_pass()
    engine.shutdown()
    assert engine.ringing_state is RingingState.IDLE
    assert events[-1].reason is StopReason.SHUTDOWN
    assert not engine.poller.running
    assert collaborators.audio.playing == set()


def test_alarm_added_after_start_is_seen_by_next_pass(engine, clock):
    engine.start(threaded=False)
    engine.add_alarm({"time": "07:31", "repeatDays": ["Monday"]})
    clock.now = at(MONDAY, 7, 31)
    fired = engine.poller.run_pass()
    assert [alarm.time for alarm in fired] == ["07:31"]

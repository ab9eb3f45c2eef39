import datetime
from typing import List

import pytest

from ringing import AlarmRinger, IntentDispatcher
from storage import AlarmStore, MemoryBlobStore

UTC = datetime.timezone.utc

# 2024-01-01 은 월요일
MONDAY = datetime.date(2024, 1, 1)


def at(day: datetime.date, hour: int, minute: int, second: int = 0) -> datetime.datetime:
    return datetime.datetime(day.year, day.month, day.day, hour, minute, second, tzinfo=UTC)


class FakeClock:
    def __init__(self, now: datetime.datetime):
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + datetime.timedelta(**kwargs)


class FakeTimer:
    def __init__(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.callback()


class FakeTimerFactory:
    def __init__(self):
        self.timers: List[FakeTimer] = []

    def __call__(self, interval, callback):
        timer = FakeTimer(interval, callback)
        self.timers.append(timer)
        return timer

    @property
    def last(self) -> FakeTimer:
        return self.timers[-1]


class Recorder:
    """모든 협력자 호출을 하나의 목록에 순서대로 기록합니다."""

    def __init__(self):
        self.calls = []

    def names(self):
        return [call[0] for call in self.calls]


class FakeNotifier:
    def __init__(self, recorder):
        self.recorder = recorder

    def post_immediate_notification(self, title, body):
        self.recorder.calls.append(("notify", title, body))


class FakeAudio:
    def __init__(self, recorder):
        self.recorder = recorder
        self.next_handle = 100
        self.playing = set()
        self.fail_on_play = False

    def play_looped(self, resource):
        if self.fail_on_play:
            from errors import ResourceError
            raise ResourceError("no audio device")
        self.next_handle += 1
        self.playing.add(self.next_handle)
        self.recorder.calls.append(("play", resource, self.next_handle))
        return self.next_handle

    def stop(self, handle):
        self.playing.discard(handle)
        self.recorder.calls.append(("stop", handle))

    def unload(self, handle):
        self.recorder.calls.append(("unload", handle))


class FakeVibrator:
    def __init__(self, recorder):
        self.recorder = recorder

    def start_pattern(self, pattern, repeat=True):
        self.recorder.calls.append(("vibrate", tuple(pattern), repeat))

    def cancel(self):
        self.recorder.calls.append(("cancel_vibration",))


class FakePrompt:
    def __init__(self, recorder):
        self.recorder = recorder
        self.callbacks = {}
        self.next_id = 0

    def present_blocking_prompt(self, message, on_stop):
        self.next_id += 1
        self.callbacks[self.next_id] = on_stop
        self.recorder.calls.append(("prompt", message, self.next_id))
        return self.next_id

    def dismiss(self, handle):
        self.recorder.calls.append(("dismiss", handle))

    def press_stop(self, handle):
        self.callbacks[handle]()


class Collaborators:
    def __init__(self):
        self.recorder = Recorder()
        self.notifier = FakeNotifier(self.recorder)
        self.audio = FakeAudio(self.recorder)
        self.vibrator = FakeVibrator(self.recorder)
        self.prompt = FakePrompt(self.recorder)


@pytest.fixture
def clock():
    return FakeClock(at(MONDAY, 7, 30))


@pytest.fixture
def timers():
    return FakeTimerFactory()


@pytest.fixture
def collaborators():
    return Collaborators()


@pytest.fixture
def dispatcher(collaborators):
    return IntentDispatcher(collaborators.notifier, collaborators.audio, collaborators.vibrator,
                            collaborators.prompt, sound_resource="alarm.wav")


@pytest.fixture
def ringer(dispatcher, clock, timers):
    return AlarmRinger(dispatcher, clock=clock, ring_timeout=60, timer_factory=timers)


@pytest.fixture
def blob_store():
    return MemoryBlobStore()


@pytest.fixture
def store(blob_store, clock):
    return AlarmStore(blob_store, clock=clock)

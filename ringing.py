import datetime
import enum
import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from alarm import Alarm
from errors import ResourceError
from time_utils import local_now

# 울림 세션 자동 종료 시간 (초)
DEFAULT_RING_TIMEOUT = 60
# 진동 패턴 (ms): 대기, 진동, 대기, 진동
VIBRATION_PATTERN = (0, 250, 250, 250)
NOTIFICATION_TITLE = "⏰ Wake Up!"


class RingingState(enum.Enum):
    IDLE = "Idle"
    RINGING = "Ringing"


class StopReason(enum.Enum):
    USER = "user"
    TIMEOUT = "timeout"
    SUPERSEDED = "superseded"
    SHUTDOWN = "shutdown"


@dataclass
class RingingSession:
    session_id: int
    alarm: Alarm
    started_at: datetime.datetime
    stop_requested: bool = False


# --- 인텐트: 상태 기계가 외부 협력자에게 요청하는 부수 효과 ---
@dataclass(frozen=True)
class PostNotification:
    title: str
    body: str


@dataclass(frozen=True)
class StartVibration:
    pattern: Tuple[int, ...]
    repeat: bool = True


@dataclass(frozen=True)
class PlaySound:
    session_id: int
    resource: Optional[str] = None


@dataclass(frozen=True)
class PresentPrompt:
    session_id: int
    message: str


@dataclass(frozen=True)
class StopSound:
    session_id: int


@dataclass(frozen=True)
class UnloadSound:
    session_id: int


@dataclass(frozen=True)
class CancelVibration:
    pass


@dataclass(frozen=True)
class DismissPrompt:
    session_id: int


@dataclass(frozen=True)
class RingingEvent:
    """구독자에게 전달되는 상태 변경 알림."""
    state: RingingState
    session: Optional[RingingSession]
    reason: Optional[StopReason] = None


class FiringStateMachine:
    """Idle/Ringing 두 상태를 가지는 울림 세션 상태 기계.

    스레드, 타이머, 실제 장치를 전혀 모르며 전이마다 실행할 인텐트 목록만
    반환합니다. 동시에 존재하는 세션은 최대 하나이고, 새 세션이 시작되면
    이전 세션은 먼저 정리됩니다 (마지막 알람이 이김).
    """

    def __init__(self, ring_timeout: float = DEFAULT_RING_TIMEOUT,
                 vibration_pattern: Tuple[int, ...] = VIBRATION_PATTERN):
        self.ring_timeout = ring_timeout
        self.vibration_pattern = tuple(vibration_pattern)
        self.session: Optional[RingingSession] = None
        self._ids = itertools.count(1)

    @property
    def state(self) -> RingingState:
        return RingingState.RINGING if self.session is not None else RingingState.IDLE

    def start(self, alarm: Alarm, now: datetime.datetime) -> List[object]:
        intents: List[object] = []
        if self.session is not None:
            logging.info(f"새 알람({alarm.time})이 울리는 중인 알람({self.session.alarm.time})을 대체합니다.")
            intents.extend(self._stop_active())

        self.session = RingingSession(session_id=next(self._ids), alarm=alarm, started_at=now)
        session_id = self.session.session_id
        intents.extend([
            PostNotification(title=NOTIFICATION_TITLE, body=f"It's {alarm.time}"),
            StartVibration(pattern=self.vibration_pattern, repeat=True),
            PlaySound(session_id=session_id),
            PresentPrompt(session_id=session_id, message=f"Alarm {alarm.time}"),
        ])
        return intents

    def stop(self, session_id: Optional[int] = None) -> List[object]:
        """활성 세션을 정리합니다. 세션이 없거나 다른 세션이면 아무 것도 하지 않습니다."""
        if self.session is None:
            return []
        if session_id is not None and session_id != self.session.session_id:
            return []
        return self._stop_active()

    def expire(self, session_id: int, now: datetime.datetime) -> List[object]:
        """타임아웃이 지난 세션이면 정리합니다."""
        session = self.session
        if session is None or session.session_id != session_id:
            return []
        elapsed = (now - session.started_at).total_seconds()
        if elapsed < self.ring_timeout:
            return []
        return self._stop_active()

    def _stop_active(self) -> List[object]:
        session = self.session
        session.stop_requested = True
        self.session = None
        # 세 가지 종료 경로 모두 같은 정리 작업을 수행
        return [
            StopSound(session_id=session.session_id),
            UnloadSound(session_id=session.session_id),
            CancelVibration(),
            DismissPrompt(session_id=session.session_id),
        ]


class IntentDispatcher:
    """인텐트를 실제 협력자(알림, 오디오, 진동, 프롬프트) 호출로 바꿉니다.

    협력자 오류는 로그만 남기고 다음 인텐트를 계속 처리합니다.
    """

    def __init__(self, notifier, audio, vibrator, prompt, sound_resource: Optional[str] = None):
        self.notifier = notifier
        self.audio = audio
        self.vibrator = vibrator
        self.prompt = prompt
        self.sound_resource = sound_resource
        self._playbacks: Dict[int, object] = {}
        self._prompts: Dict[int, object] = {}

    def dispatch(self, intents: List[object], on_stop: Optional[Callable[[int], None]] = None):
        for intent in intents:
            try:
                self._dispatch_one(intent, on_stop)
            except ResourceError as e:
                logging.error(f"리소스 오류 ({type(intent).__name__}): {e}")
            except Exception as e:
                logging.error(f"인텐트 처리 중 예기치 않은 오류 ({type(intent).__name__}): {e}", exc_info=True)

    def _dispatch_one(self, intent, on_stop):
        if isinstance(intent, PostNotification):
            self.notifier.post_immediate_notification(intent.title, intent.body)
        elif isinstance(intent, StartVibration):
            self.vibrator.start_pattern(list(intent.pattern), repeat=intent.repeat)
        elif isinstance(intent, PlaySound):
            resource = intent.resource or self.sound_resource
            self._playbacks[intent.session_id] = self.audio.play_looped(resource)
        elif isinstance(intent, PresentPrompt):
            session_id = intent.session_id
            callback = (lambda: on_stop(session_id)) if on_stop else (lambda: None)
            self._prompts[session_id] = self.prompt.present_blocking_prompt(intent.message, callback)
        elif isinstance(intent, StopSound):
            handle = self._playbacks.get(intent.session_id)
            if handle is not None:
                self.audio.stop(handle)
        elif isinstance(intent, UnloadSound):
            handle = self._playbacks.pop(intent.session_id, None)
            if handle is not None:
                self.audio.unload(handle)
        elif isinstance(intent, CancelVibration):
            self.vibrator.cancel()
        elif isinstance(intent, DismissPrompt):
            handle = self._prompts.pop(intent.session_id, None)
            if handle is not None and hasattr(self.prompt, "dismiss"):
                self.prompt.dismiss(handle)
        else:
            logging.warning(f"알 수 없는 인텐트: {intent!r}")


def _default_timer_factory(interval: float, callback: Callable[[], None]):
    timer = threading.Timer(interval, callback)
    timer.daemon = True
    return timer


class AlarmRinger:
    """FiringStateMachine을 소유하고 시작/정지를 직렬화합니다.

    폴링 스레드, 타임아웃 타이머, UI 스레드가 모두 ring/stop을 호출할 수 있으므로
    전이와 인텐트 실행은 하나의 RLock 아래에서 수행됩니다.
    """

    def __init__(self, dispatcher: IntentDispatcher, clock: Callable = local_now,
                 ring_timeout: float = DEFAULT_RING_TIMEOUT, timer_factory: Callable = _default_timer_factory,
                 machine: Optional[FiringStateMachine] = None):
        self.dispatcher = dispatcher
        self.clock = clock
        self.machine = machine or FiringStateMachine(ring_timeout=ring_timeout)
        self.timer_factory = timer_factory
        self._lock = threading.RLock()
        self._timer = None
        self._listeners: List[Callable[[RingingEvent], None]] = []

    @property
    def state(self) -> RingingState:
        with self._lock:
            return self.machine.state

    @property
    def session(self) -> Optional[RingingSession]:
        with self._lock:
            return self.machine.session

    def subscribe(self, listener: Callable[[RingingEvent], None]) -> Callable[[], None]:
        """상태 변경 구독. 구독 해제 함수를 반환합니다."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
        return unsubscribe

    def ring(self, alarm: Alarm) -> RingingSession:
        with self._lock:
            previous = self.machine.session
            intents = self.machine.start(alarm, self.clock())
            session = self.machine.session
            logging.info(f"알람 울림 시작: {alarm.time} (세션 {session.session_id})")
            self._cancel_timer()
            # 이전 세션 정리 인텐트가 새 세션 인텐트보다 먼저 실행됨
            self.dispatcher.dispatch(intents, on_stop=self._stop_from_prompt)
            self._arm_timer(session.session_id)
            if previous is not None:
                self._notify(RingingEvent(RingingState.IDLE, previous, StopReason.SUPERSEDED))
            self._notify(RingingEvent(RingingState.RINGING, session))
            return session

    def stop(self, session_id: Optional[int] = None, reason: StopReason = StopReason.USER) -> bool:
        """울림을 멈춥니다. 멈춘 세션이 없으면 False (오류 아님)."""
        with self._lock:
            session = self.machine.session
            intents = self.machine.stop(session_id)
            if not intents:
                logging.debug(f"정지할 울림 세션이 없습니다 (요청: {session_id}, 사유: {reason.value}).")
                return False
            logging.info(f"알람 울림 정지: {session.alarm.time} (세션 {session.session_id}, 사유: {reason.value})")
            self._cancel_timer()
            self.dispatcher.dispatch(intents)
            self._notify(RingingEvent(RingingState.IDLE, session, reason))
            return True

    def expire(self, session_id: int, force: bool = False) -> bool:
        """타임아웃 처리. 해당 세션이 아직 울리는 중이고 시간이 지났으면 멈춥니다.

        타이머에서 호출될 때는 force=True로 시계 비교 없이 만료시킵니다.
        """
        with self._lock:
            session = self.machine.session
            if force:
                intents = self.machine.stop(session_id)
            else:
                intents = self.machine.expire(session_id, self.clock())
            if not intents:
                return False
            logging.info(f"알람 울림 시간 초과로 정지: {session.alarm.time} (세션 {session_id})")
            self._cancel_timer()
            self.dispatcher.dispatch(intents)
            self._notify(RingingEvent(RingingState.IDLE, session, StopReason.TIMEOUT))
            return True

    def shutdown(self):
        self.stop(reason=StopReason.SHUTDOWN)
        with self._lock:
            self._cancel_timer()

    def _stop_from_prompt(self, session_id: int):
        self.stop(session_id=session_id, reason=StopReason.USER)

    def _arm_timer(self, session_id: int):
        timer = self.timer_factory(self.machine.ring_timeout, lambda: self.expire(session_id, force=True))
        self._timer = timer
        timer.start()

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _notify(self, event: RingingEvent):
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logging.error("울림 상태 구독자 호출 실패", exc_info=True)

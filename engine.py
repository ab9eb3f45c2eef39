import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, List, Mapping, Optional, Union

from alarm import Alarm
from config import AppConfig
from ringing import AlarmRinger, IntentDispatcher, RingingEvent, RingingState, StopReason
from scheduler import PollScheduler
from storage import AlarmStore, JsonFileBlobStore
from time_utils import local_now


class AlarmClockEngine:
    """UI 계층이 사용하는 알람 엔진 진입점.

    알람 저장소, 울림 상태 기계, 폴링 스케줄러를 묶고 UI에 필요한 조회/변경
    함수와 울림 상태 구독을 제공합니다. 외부 협력자(알림, 오디오, 진동,
    프롬프트)와 시계, blob 저장소는 모두 주입받습니다.
    """

    def __init__(self, config: AppConfig, notifier, audio, vibrator, prompt,
                 clock: Callable = local_now, blob_store=None, executor=None,
                 timer_factory: Optional[Callable] = None, scheduler=None):
        self.config = config
        self.clock = clock
        if blob_store is None:
            blob_store = JsonFileBlobStore(config.data_dir)
        if executor is None:
            executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="alarm-store")
        self.store = AlarmStore(blob_store, key=config.blob_key, executor=executor, clock=clock)

        dispatcher = IntentDispatcher(notifier, audio, vibrator, prompt, sound_resource=config.resolved_sound_path)
        ringer_kwargs = {"clock": clock, "ring_timeout": config.ring_timeout}
        if timer_factory is not None:
            ringer_kwargs["timer_factory"] = timer_factory
        self.ringer = AlarmRinger(dispatcher, **ringer_kwargs)

        self.poller = PollScheduler(self.store, self.ringer, clock=clock,
                                    interval=config.poll_interval, scheduler=scheduler)
        self._started = False

    # --- 생명 주기 ---
    def start(self, threaded: bool = True) -> List[Alarm]:
        """저장된 알람을 불러오고 폴링을 시작합니다."""
        if self._started:
            logging.warning("알람 엔진이 이미 시작되었습니다.")
            return self.store.all()
        alarms = self.store.load()
        logging.info(f"{len(alarms)}개의 알람 로드 완료.")
        self.poller.start(threaded=threaded)
        self._started = True
        return alarms

    def shutdown(self):
        """폴링을 취소하고 울리는 세션을 강제로 정지한 뒤 저장 작업을 마칩니다."""
        logging.info("알람 엔진 종료 중...")
        self.poller.stop()
        self.ringer.shutdown()
        self.store.close()
        self._started = False
        logging.info("알람 엔진 종료 완료.")

    # --- UI 에 노출되는 함수 ---
    def get_alarms(self) -> List[Alarm]:
        return self.store.all()

    def add_alarm(self, candidate: Union[Alarm, Mapping[str, Any]]) -> Alarm:
        """ValidationError는 그대로 전파되어 UI가 사용자에게 보여줍니다."""
        return self.store.add(candidate)

    def toggle_alarm(self, time_key: str) -> List[Alarm]:
        return self.store.toggle_time(time_key)

    def toggle_alarm_by_id(self, alarm_id: str) -> List[Alarm]:
        return self.store.toggle_id(alarm_id)

    def delete_alarm(self, index: int) -> Optional[Alarm]:
        return self.store.remove(index)

    def delete_alarm_by_id(self, alarm_id: str) -> Optional[Alarm]:
        return self.store.remove_id(alarm_id)

    def subscribe(self, listener: Callable[[RingingEvent], None]) -> Callable[[], None]:
        return self.ringer.subscribe(listener)

    def stop_ringing(self) -> bool:
        return self.ringer.stop(reason=StopReason.USER)

    @property
    def ringing_state(self) -> RingingState:
        return self.ringer.state

import logging
import math
import threading
import time
from typing import Callable, List, Optional

import schedule

from alarm import Alarm
from due_check import due_alarms
from time_utils import local_now

# 기본 폴링 주기 (초)
DEFAULT_POLL_INTERVAL = 60
POLL_JOB_TAG = "alarm-poll"


class PollScheduler:
    """주기적으로 저장된 알람을 검사하고 울려야 할 알람을 AlarmRinger에 넘깁니다.

    시작 즉시 한 번 검사하고, 이후 시작 시각 기준 interval 초 간격의 고정된
    시각마다 schedule 작업을 실행합니다. 다음 실행 시각은 이전 검사가 끝난
    시점이 아니라 시작 시각에서 계산되므로 검사 주기가 뒤로 밀리지 않습니다.
    알람 데이터는 들고 있지 않으며, 검사 패스는 서로 겹치지 않습니다.
    """

    def __init__(self, store, ringer, clock: Callable = local_now, interval: float = DEFAULT_POLL_INTERVAL,
                 scheduler: Optional[schedule.Scheduler] = None):
        self.store = store
        self.ringer = ringer
        self.clock = clock
        self.interval = interval
        self._scheduler = scheduler or schedule.Scheduler()
        self._pass_lock = threading.Lock()
        # 스케줄러 실행 루프를 제어하기 위한 이벤트
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._job: Optional[schedule.Job] = None

    @property
    def running(self) -> bool:
        return self._job is not None

    def start(self, threaded: bool = True):
        """즉시 한 번 검사한 뒤 주기 작업을 등록하고, threaded면 백그라운드 스레드를 시작합니다."""
        if self._job is not None:
            logging.warning("폴링 스케줄러가 이미 실행 중입니다.")
            return
        logging.info(f"폴링 스케줄러 시작 (주기 {self.interval}초).")
        self._job = self._scheduler.every(self.interval).seconds.do(self.run_pass).tag(POLL_JOB_TAG)
        started_at = time.monotonic()
        self.run_pass()

        if threaded:
            # 스레드 중지 이벤트 리셋
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._run_continuously, args=(started_at,),
                                            name="alarm-poll", daemon=True)
            self._thread.start()
            logging.info("폴링 스케줄러 백그라운드 스레드 시작됨.")

    def next_deadline(self, started_at: float, now: float, previous: Optional[float] = None) -> float:
        """now 이후의 첫 실행 시각 (started_at + k * interval).

        이미 지나간 회차는 몰아서 실행하지 않고 건너뜁니다. previous가 주어지면
        그 다음 회차보다 앞서지 않습니다.
        """
        k = math.floor((now - started_at) / self.interval) + 1
        deadline = started_at + k * self.interval
        if previous is not None:
            deadline = max(deadline, previous + self.interval)
        return deadline

    def _run_continuously(self, started_at: float):
        """고정된 실행 시각마다 스케줄러 작업을 백그라운드에서 실행합니다."""
        deadline = self.next_deadline(started_at, time.monotonic())
        while not self._stop_event.wait(max(0.0, deadline - time.monotonic())):
            try:
                self._scheduler.run_all()
            except Exception:
                logging.exception("스케줄러 실행 중 오류 발생")
            deadline = self.next_deadline(started_at, time.monotonic(), previous=deadline)
        logging.info("폴링 스케줄러 백그라운드 스레드 종료.")

    def run_pass(self) -> List[Alarm]:
        """저장소의 모든 알람을 현재 시각으로 검사하고, 울린 알람 목록을 반환합니다."""
        if not self._pass_lock.acquire(blocking=False):
            logging.warning("이전 알람 검사가 아직 진행 중이라 이번 주기는 건너뜁니다.")
            return []
        try:
            now = self.clock()
            alarms = self.store.all()
            logging.debug(f"알람 검사: {now.strftime('%Y-%m-%d %H:%M:%S')} ({len(alarms)}개)")
            fired = []
            for alarm in due_alarms(alarms, now):
                try:
                    logging.info(f"알람 실행: {alarm}")
                    self.ringer.ring(alarm)
                    fired.append(alarm)
                except Exception:
                    logging.exception(f"알람 처리 중 오류 발생: {alarm.id}")
            return fired
        finally:
            self._pass_lock.release()

    def stop(self):
        """주기 작업을 취소하고 백그라운드 스레드를 중지합니다."""
        if self._job is None and self._thread is None:
            logging.info("폴링 스케줄러가 실행 중이지 않음.")
            return
        logging.info("폴링 스케줄러 중지 요청 중...")
        self._scheduler.clear(POLL_JOB_TAG)
        self._job = None
        self._stop_event.set()
        if self._thread is not None:
            if self._thread is not threading.current_thread():
                self._thread.join()
            self._thread = None
        logging.info("폴링 스케줄러 중지 완료.")

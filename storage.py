import json
import logging
import os
import threading
import uuid
from concurrent.futures import Executor, Future, wait
from dataclasses import replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from alarm import Alarm, alarm_from_dict, alarm_to_dict, normalize_alarm
from errors import PersistenceError, ValidationError
from time_utils import local_now

# 알람 목록이 저장되는 blob 이름
DEFAULT_KEY = "alarms"


class MemoryBlobStore:
    """프로세스 메모리에 blob을 보관하는 키-값 저장소 (테스트/임시 실행용)."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value


class JsonFileBlobStore:
    """디렉토리 안에 키마다 <key>.json 파일 하나를 두는 키-값 저장소."""

    def __init__(self, directory: str):
        self.directory = directory

    def path_for(self, key: str) -> str:
        return os.path.join(self.directory, f"{key}.json")

    def _ensure_dir_exists(self):
        """데이터 저장 디렉토리가 없으면 생성합니다."""
        if not os.path.exists(self.directory):
            try:
                os.makedirs(self.directory, exist_ok=True)
                logging.info(f"데이터 디렉토리 생성됨: {self.directory}")
            except OSError as e:
                raise PersistenceError(f"데이터 디렉토리 생성 실패: {self.directory}: {e}") from e

    def get(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        if not os.path.exists(path):
            logging.info(f"저장 파일({path})이 없습니다.")
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except OSError as e:
            raise PersistenceError(f"저장 파일 읽기 실패: {path}: {e}") from e

    def set(self, key: str, value: str) -> None:
        self._ensure_dir_exists()
        path = self.path_for(key)
        tmp_path = f"{path}.tmp"
        try:
            # 임시 파일에 먼저 쓰고 교체하여 반쯤 쓰인 JSON이 남지 않도록 함
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_path, path)
        except OSError as e:
            raise PersistenceError(f"저장 파일 쓰기 실패: {path}: {e}") from e


class AlarmStore:
    """알람 목록(생성 순서)을 소유하고 blob 저장소에 전체 스냅샷을 미러링합니다.

    메모리 목록 변경은 즉시 반영되고, 영구 저장은 executor가 주어지면 비동기로
    (fire-and-forget) 수행됩니다. 저장 실패는 로그로 남기고 빈 목록으로 한 번 더
    덮어써서 깨진 JSON이 남지 않게 합니다. 어떤 저장소 오류도 호출자에게
    전파되지 않습니다.
    """

    def __init__(self, blob_store, key: str = DEFAULT_KEY, executor: Optional[Executor] = None,
                 clock: Callable = local_now):
        self.blob_store = blob_store
        self.key = key
        self._executor = executor
        self._clock = clock
        self._alarms: List[Alarm] = []
        self._lock = threading.Lock()
        self._pending: List[Future] = []
        self._pending_lock = threading.Lock()

    # --- 조회 ---
    def all(self) -> List[Alarm]:
        """알람 목록 복사본을 생성 순서대로 반환합니다."""
        with self._lock:
            return list(self._alarms)

    def __len__(self):
        with self._lock:
            return len(self._alarms)

    # --- 로드 ---
    def load(self) -> List[Alarm]:
        """저장된 알람 목록을 불러옵니다. 실패해도 예외 없이 빈 목록을 반환합니다."""
        logging.info(f"알람 로딩 시도: key={self.key}")
        try:
            raw_content = self.blob_store.get(self.key)
        except PersistenceError as e:
            logging.error(f"알람 데이터 읽기 실패: {e}. 빈 목록을 사용합니다.")
            self._replace_all([])
            return []
        except Exception as e:
            logging.error(f"알람 데이터 읽기 중 예기치 않은 오류: {e}. 빈 목록을 사용합니다.", exc_info=True)
            self._replace_all([])
            return []

        if raw_content is None or not raw_content.strip():
            logging.warning("저장된 알람이 없습니다. 빈 목록을 반환합니다.")
            self._replace_all([])
            return []

        try:
            alarms = self._deserialize(raw_content)
        except (json.JSONDecodeError, ValidationError, TypeError, ValueError) as e:
            logging.error(f"저장된 알람 데이터가 손상되었습니다: {e}. 빈 목록으로 초기화합니다.")
            self._replace_all([])
            # 손상된 blob은 빈 목록으로 덮어써서 폐기
            self._submit([])
            return []

        self._replace_all(alarms)
        logging.info(f"최종 변환된 알람 개수: {len(alarms)}")
        return list(alarms)

    def _deserialize(self, raw_content: str) -> List[Alarm]:
        payload = json.loads(raw_content)
        if not isinstance(payload, list):
            raise ValidationError(f"알람 데이터가 배열이 아닙니다: {type(payload).__name__}")
        now = self._clock()
        alarms = []
        seen_ids = set()
        for i, data in enumerate(payload):
            logging.debug(f"  변환 시도 데이터 [{i}]: {data}")
            alarm = alarm_from_dict(data, now=now)
            if alarm.id in seen_ids:
                alarm = replace(alarm, id=str(uuid.uuid4()))
                logging.warning(f"중복된 알람 ID를 새로 생성: [{i}] -> {alarm.id}")
            seen_ids.add(alarm.id)
            alarms.append(alarm)
        return alarms

    def _replace_all(self, alarms: List[Alarm]):
        with self._lock:
            self._alarms = list(alarms)

    # --- 변경 ---
    def add(self, candidate: Union[Alarm, Mapping[str, Any]]) -> Alarm:
        """후보 알람을 정규화하여 목록 끝에 추가합니다. 검증 실패 시 상태는 바뀌지 않습니다."""
        alarm = normalize_alarm(candidate, now=self._clock())
        with self._lock:
            self._alarms.append(alarm)
            self._persist_locked()
        logging.info(f"새 알람 추가됨: {alarm}")
        return alarm

    def remove(self, index: int) -> Optional[Alarm]:
        """위치 인덱스로 알람을 삭제합니다. 범위를 벗어나면 아무 것도 하지 않습니다."""
        with self._lock:
            if not isinstance(index, int) or index < 0 or index >= len(self._alarms):
                logging.warning(f"삭제할 알람 인덱스가 범위를 벗어났습니다: {index}")
                return None
            removed = self._alarms.pop(index)
            self._persist_locked()
        logging.info(f"알람 삭제 완료: [{index}] {removed}")
        return removed

    def remove_id(self, alarm_id: str) -> Optional[Alarm]:
        with self._lock:
            for index, alarm in enumerate(self._alarms):
                if alarm.id == alarm_id:
                    removed = self._alarms.pop(index)
                    self._persist_locked()
                    break
            else:
                logging.warning(f"삭제할 알람 ID를 찾을 수 없습니다: {alarm_id}")
                return None
        logging.info(f"알람 삭제 완료: ID {alarm_id}")
        return removed

    def toggle(self, predicate: Callable[[Alarm], bool]) -> List[Alarm]:
        """predicate와 일치하는 모든 알람의 활성화 상태를 뒤집고, 바뀐 알람들을 반환합니다."""
        toggled = []
        with self._lock:
            for i, alarm in enumerate(self._alarms):
                if predicate(alarm):
                    updated = replace(alarm, enabled=not alarm.enabled)
                    self._alarms[i] = updated
                    toggled.append(updated)
            if toggled:
                self._persist_locked()
        for alarm in toggled:
            logging.info(f"알람 활성화 상태 변경: {alarm.time} -> {'Enabled' if alarm.enabled else 'Disabled'}")
        return toggled

    def toggle_time(self, time_key: str) -> List[Alarm]:
        """time이 같은 알람을 모두 토글합니다 (같은 시간의 알람은 구분되지 않음)."""
        return self.toggle(lambda alarm: alarm.time == time_key)

    def toggle_id(self, alarm_id: str) -> List[Alarm]:
        return self.toggle(lambda alarm: alarm.id == alarm_id)

    # --- 영구 저장 ---
    def _persist_locked(self):
        # self._lock을 잡은 상태에서 호출해야 쓰기 순서가 변경 순서와 같아짐
        self._submit([alarm_to_dict(alarm) for alarm in self._alarms])

    def _submit(self, snapshot: List[Dict[str, Any]]):
        if self._executor is None:
            self._write(snapshot)
            return
        try:
            future = self._executor.submit(self._write, snapshot)
        except RuntimeError as e:
            # executor가 이미 종료된 경우
            logging.error(f"알람 저장 작업을 예약하지 못했습니다: {e}")
            return
        with self._pending_lock:
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)

    def _write(self, snapshot: List[Dict[str, Any]]):
        logging.info(f"알람 저장: key={self.key}")
        try:
            self.blob_store.set(self.key, json.dumps(snapshot, ensure_ascii=False))
            logging.info(f"{len(snapshot)}개의 알람 저장 완료.")
        except Exception as e:
            logging.error(f"알람 저장 실패: {e}. 빈 목록으로 덮어쓰기를 시도합니다.")
            try:
                self.blob_store.set(self.key, json.dumps([]))
            except Exception as backup_error:
                logging.error(f"빈 목록 저장도 실패했습니다: {backup_error}")

    def flush(self, timeout: Optional[float] = None):
        """예약된 저장 작업이 모두 끝날 때까지 기다립니다."""
        with self._pending_lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def close(self):
        self.flush()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

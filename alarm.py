import collections.abc
import datetime
import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Set, Tuple, Union

from errors import ValidationError
from time_utils import local_now, week_index

# 요일 이름 (월요일 시작, datetime.weekday() 인덱스와 동일)
WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

# 약자(Mon)와 전체 이름(monday) 모두 허용
_WEEKDAY_LOOKUP = {}
for _name in WEEKDAYS:
    _WEEKDAY_LOOKUP[_name.lower()] = _name
    _WEEKDAY_LOOKUP[_name[:3].lower()] = _name

_TIME_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")

DEFAULT_TIME = "00:00"


@dataclass
class Alarm:
    time: str  # HH:MM 형식 (24시간)
    repeat_days: Set[str] = field(default_factory=set)
    enabled: bool = True
    alternate_weeks: bool = False
    start_week: Optional[int] = None
    excluded_dates: Set[datetime.date] = field(default_factory=set)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def hour_minute(self) -> Tuple[int, int]:
        """time 문자열을 (시, 분) 정수 튜플로 반환합니다."""
        return parse_time(self.time)

    def get_repeat_str(self) -> str:
        """선택된 요일을 문자열로 반환합니다."""
        if not self.repeat_days:
            return ""
        if len(self.repeat_days) == 7:
            return "[Daily]"
        day_names = [day[:3] for day in WEEKDAYS if day in self.repeat_days]
        return f"[{', '.join(day_names)}]"

    def __str__(self):
        # 트레이 메뉴/로그에 쓰이는 표시 형식
        status_str = "🔔" if self.enabled else "🔕"
        parts = [f"{status_str} {self.time}"]
        repeat_str = self.get_repeat_str()
        if repeat_str:
            parts.append(repeat_str)
        if self.alternate_weeks:
            parts.append("(Alternate Weeks)")
        if self.excluded_dates:
            count = len(self.excluded_dates)
            parts.append(f"({count} excluded {'date' if count == 1 else 'dates'})")
        return " ".join(parts)


def parse_time(value: Any) -> Tuple[int, int]:
    """'HH:MM' 문자열을 검증하고 (시, 분)을 반환합니다."""
    if not isinstance(value, str):
        raise ValidationError(f"시간은 문자열이어야 합니다: {value!r}")
    match = _TIME_PATTERN.match(value)
    if not match:
        raise ValidationError(f"잘못된 시간 형식입니다 (HH:MM 필요): {value!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValidationError(f"시간 범위를 벗어났습니다: {value!r}")
    return hour, minute


def normalize_weekday(value: Any) -> str:
    if isinstance(value, str):
        name = _WEEKDAY_LOOKUP.get(value.strip().lower())
        if name:
            return name
    raise ValidationError(f"알 수 없는 요일입니다: {value!r}")


def normalize_date(value: Any) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str):
        try:
            return datetime.date.fromisoformat(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"잘못된 날짜입니다 (YYYY-MM-DD 필요): {value!r}")


def _as_iterable(value: Any, field_name: str) -> Iterable:
    if value is None:
        return ()
    if isinstance(value, (str, bytes)) or not isinstance(value, collections.abc.Iterable):
        raise ValidationError(f"{field_name} 값은 목록이어야 합니다: {value!r}")
    return value


# 저장 형식(camelCase)과 파이썬 속성(snake_case) 이름 매핑
_FIELD_ALIASES = {
    "repeatDays": "repeat_days",
    "alternateWeeks": "alternate_weeks",
    "startWeek": "start_week",
    "excludedDates": "excluded_dates",
}


def _candidate_fields(candidate: Union[Alarm, Mapping[str, Any]]) -> Dict[str, Any]:
    if isinstance(candidate, Alarm):
        return dict(vars(candidate))
    if isinstance(candidate, collections.abc.Mapping):
        data = {}
        for key, value in candidate.items():
            data[_FIELD_ALIASES.get(key, key)] = value
        return data
    raise ValidationError(f"알람 데이터 형식이 아닙니다: {type(candidate).__name__}")


def normalize_alarm(candidate: Union[Alarm, Mapping[str, Any]],
                    now: Optional[datetime.datetime] = None) -> Alarm:
    """후보 알람을 검증/정규화하여 새 Alarm 객체로 반환합니다.

    잘못된 시간이나 날짜, 알 수 없는 요일이 있으면 ValidationError를 발생시킵니다.
    alternate_weeks가 꺼져 있으면 start_week는 항상 None이 되고, 켜져 있는데
    start_week가 없으면 now(생성 시점)의 주 번호가 기준 주로 기록됩니다.
    """
    data = _candidate_fields(candidate)

    time_value = data.get("time")
    if time_value is None:
        time_value = DEFAULT_TIME
    hour, minute = parse_time(time_value)

    repeat_days = {normalize_weekday(day) for day in _as_iterable(data.get("repeat_days"), "repeatDays")}
    excluded_dates = {normalize_date(day) for day in _as_iterable(data.get("excluded_dates"), "excludedDates")}

    enabled = data.get("enabled")
    enabled = True if enabled is None else bool(enabled)
    alternate_weeks = bool(data.get("alternate_weeks"))

    start_week = None
    if alternate_weeks:
        start_week = data.get("start_week")
        if start_week is None:
            start_week = week_index(now or local_now())
            logging.debug(f"격주 알람 기준 주 기록: {start_week}")
        elif isinstance(start_week, bool) or not isinstance(start_week, int):
            # JSON에서 7.0 처럼 들어온 값은 정수로 인정
            if isinstance(start_week, float) and start_week.is_integer():
                start_week = int(start_week)
            else:
                raise ValidationError(f"startWeek는 정수여야 합니다: {start_week!r}")

    alarm_id = data.get("id") or str(uuid.uuid4())

    return Alarm(
        id=str(alarm_id),
        time=f"{hour:02d}:{minute:02d}",
        repeat_days=repeat_days,
        enabled=enabled,
        alternate_weeks=alternate_weeks,
        start_week=start_week,
        excluded_dates=excluded_dates,
    )


def alarm_to_dict(alarm: Alarm) -> Dict[str, Any]:
    """Alarm을 저장용 JSON 딕셔너리로 변환합니다."""
    alternate_weeks = bool(alarm.alternate_weeks)
    return {
        "id": alarm.id,
        "time": alarm.time,
        # set은 JSON으로 저장할 수 없으므로 요일 순서대로 정렬된 리스트로 변환
        "repeatDays": [day for day in WEEKDAYS if day in alarm.repeat_days],
        "enabled": bool(alarm.enabled),
        "alternateWeeks": alternate_weeks,
        "startWeek": alarm.start_week if alternate_weeks else None,
        "excludedDates": sorted(day.isoformat() for day in alarm.excluded_dates),
    }


def alarm_from_dict(data: Mapping[str, Any], now: Optional[datetime.datetime] = None) -> Alarm:
    """저장된 JSON 딕셔너리에서 Alarm을 복원합니다. 빠진 필드는 기본값으로 채웁니다."""
    if not isinstance(data, collections.abc.Mapping):
        raise ValidationError(f"알람 레코드는 객체여야 합니다: {data!r}")
    if not data.get("id"):
        logging.warning(f"알람 데이터에 ID가 없어 새로 생성합니다: {data.get('time')}")
    return normalize_alarm(data, now=now)

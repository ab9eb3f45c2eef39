import datetime
import logging
from typing import Iterable, List

from alarm import WEEKDAYS, Alarm
from time_utils import iso_date, week_index


def is_due(alarm: Alarm, now: datetime.datetime) -> bool:
    """now 시점에 알람이 울려야 하는지 판단합니다.

    부수 효과가 없는 순수 함수이며, 첫 번째로 실패한 조건에서 바로 False를
    반환합니다. 분 단위로 정확히 일치할 때만 True이고 유예 시간은 없습니다.
    폴링이 분 경계를 넘어 지연되면 그 회차는 그대로 놓칩니다.
    """
    if not alarm.enabled:
        return False

    if alarm.excluded_dates:
        current_date = iso_date(now)
        if any(day.isoformat() == current_date for day in alarm.excluded_dates):
            return False

    if alarm.alternate_weeks:
        if alarm.start_week is None:
            # 정규화를 거친 알람에서는 일어나지 않음
            logging.warning(f"격주 알람에 기준 주가 없습니다: {alarm.id}")
            return False
        delta = week_index(now) - alarm.start_week
        # 파이썬의 % 는 floor 기반이라 음수 delta도 0/1로 떨어짐
        if delta % 2 != 0:
            return False

    if WEEKDAYS[now.weekday()] not in alarm.repeat_days:
        return False

    hour, minute = alarm.hour_minute()
    return now.hour == hour and now.minute == minute


def due_alarms(alarms: Iterable[Alarm], now: datetime.datetime) -> List[Alarm]:
    """울려야 하는 알람만 저장 순서대로 반환합니다."""
    return [alarm for alarm in alarms if is_due(alarm, now)]

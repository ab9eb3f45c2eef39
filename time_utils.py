import datetime

# 7일 = 604,800,000 ms
WEEK_MILLIS = 7 * 24 * 60 * 60 * 1000


def local_now() -> datetime.datetime:
    """로컬 타임존 정보가 붙은 현재 시각을 반환합니다."""
    return datetime.datetime.now().astimezone()


def epoch_millis(moment: datetime.datetime) -> int:
    # naive datetime은 timestamp()가 로컬 시각으로 해석함
    return int(moment.timestamp() * 1000)


def week_index(moment: datetime.datetime) -> int:
    """에포크 기준 주 번호 (epoch ms / 7일, 내림)."""
    return epoch_millis(moment) // WEEK_MILLIS


def iso_date(moment: datetime.datetime) -> str:
    """moment의 로컬 날짜를 YYYY-MM-DD 문자열로 반환합니다."""
    return moment.date().isoformat()

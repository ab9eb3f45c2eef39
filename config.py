import logging
import os
import sys
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from ringing import DEFAULT_RING_TIMEOUT
from scheduler import DEFAULT_POLL_INTERVAL
from storage import DEFAULT_KEY

# --- 애플리케이션 정보 ---
COMPANY_NAME = "MyCompanyName"
APP_NAME = "AlarmClockPAAK"
APP_USER_MODEL_ID = f"{COMPANY_NAME}.{APP_NAME}.1"  # AppUserModelID
SOUND_FILE_NAME = "alarm.wav"
# -----------------------


def _get_env_float(name: str, default: float) -> float:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return float(val)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a number") from exc


def default_data_dir(app_name: str = APP_NAME) -> str:
    """플랫폼별 앱 데이터 디렉토리 경로를 반환합니다."""
    # Windows는 %LOCALAPPDATA% 사용
    local_appdata = os.environ.get("LOCALAPPDATA")
    if local_appdata:
        return os.path.join(local_appdata, app_name)
    xdg_data_home = os.environ.get("XDG_DATA_HOME") or os.path.join(os.path.expanduser("~"), ".local", "share")
    return os.path.join(xdg_data_home, app_name)


def resource_path(relative_path):
    """ Get absolute path to resource, works for dev and for PyInstaller """
    base_path = getattr(sys, "_MEIPASS", None) or os.path.abspath(os.path.dirname(__file__))
    return os.path.join(base_path, relative_path)


@dataclass
class AppConfig:
    data_dir: str
    blob_key: str = DEFAULT_KEY
    poll_interval: float = DEFAULT_POLL_INTERVAL
    ring_timeout: float = DEFAULT_RING_TIMEOUT
    sound_path: Optional[str] = None
    log_level: str = "DEBUG"

    @property
    def resolved_sound_path(self) -> str:
        return self.sound_path or os.path.join(self.data_dir, SOUND_FILE_NAME)


def load_config(env_path: Optional[str] = None) -> AppConfig:
    """환경 변수(및 .env 파일)에서 설정을 읽어 AppConfig를 만듭니다."""
    if env_path is None:
        env_path = ".env"
    if os.path.exists(env_path):
        load_dotenv(env_path)
        logging.debug(f".env 파일 로드됨: {env_path}")

    poll_interval = _get_env_float("ALARM_CLOCK_POLL_INTERVAL", DEFAULT_POLL_INTERVAL)
    ring_timeout = _get_env_float("ALARM_CLOCK_RING_TIMEOUT", DEFAULT_RING_TIMEOUT)
    if poll_interval <= 0:
        raise ValueError("Environment variable ALARM_CLOCK_POLL_INTERVAL must be positive")
    if ring_timeout <= 0:
        raise ValueError("Environment variable ALARM_CLOCK_RING_TIMEOUT must be positive")

    return AppConfig(
        data_dir=os.getenv("ALARM_CLOCK_DATA_DIR") or default_data_dir(),
        poll_interval=poll_interval,
        ring_timeout=ring_timeout,
        sound_path=os.getenv("ALARM_CLOCK_SOUND_PATH") or None,
        log_level=os.getenv("ALARM_CLOCK_LOG_LEVEL", "DEBUG").upper(),
    )

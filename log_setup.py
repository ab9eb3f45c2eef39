import logging
import os
import sys
from typing import Optional

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(message)s'


def setup_logging(level: str = "DEBUG", data_dir: Optional[str] = None, log_dir: str = "logs") -> Optional[str]:
    """파일 로깅을 설정하고 로그 파일 경로를 반환합니다 (실패 시 콘솔 로깅, None 반환).

    소스 코드로 실행 중이면 logs/debug.log, 패키지된 상태(PyInstaller)면
    앱 데이터 디렉토리의 packaged_debug.log에 기록합니다.
    """
    log_level = getattr(logging, level.upper(), logging.DEBUG)
    # 패키지된 상태인지 확인 (PyInstaller는 sys.frozen 속성을 설정함)
    is_packaged = getattr(sys, 'frozen', False)

    if is_packaged and data_dir:
        target_dir, file_name = data_dir, "packaged_debug.log"
    else:
        target_dir, file_name = log_dir, "debug.log"

    try:
        os.makedirs(target_dir, exist_ok=True)
        log_file_path = os.path.join(target_dir, file_name)
        logging.basicConfig(
            level=log_level,
            format=LOG_FORMAT,
            filename=log_file_path,
            filemode='w',
            encoding='utf-8',
            force=True
        )
        logging.debug(f"--- File Logging Setup Complete ({'Packaged' if is_packaged else 'Running from Source'}) ---")
        return log_file_path
    except OSError as e:
        # 로그 파일을 열 수 없으면 경고 레벨 이상만 콘솔 출력
        print(f"Error during file logging setup: {e}", file=sys.stderr)
        logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT, force=True)
        logging.warning("--- File Logging Skipped (Log directory issue), Basic Config Active ---")
        return None


def install_excepthook():
    """처리되지 않은 예외를 로깅하도록 sys.excepthook을 교체합니다."""
    def handle_exception(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            # 사용자가 Ctrl+C로 종료한 경우는 정상 종료로 간주
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        logging.error("Unhandled exception caught:", exc_info=(exc_type, exc_value, exc_traceback))

    sys.excepthook = handle_exception

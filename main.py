import logging
import platform
import signal
import sys

from PyQt5.QtWidgets import QApplication
from PyQt5.QtCore import Qt, QTimer

from config import APP_NAME, APP_USER_MODEL_ID, load_config
from engine import AlarmClockEngine
from log_setup import install_excepthook, setup_logging
from notification import (
    LoggingVibrationDriver, NotificationHelper, QtAcknowledgmentPrompt, QtAudioPlayer, QtNotifier,
    ensure_alarm_sound,
)
from ui import AlarmTray


def _set_app_user_model_id():
    """Windows 작업 표시줄 아이콘용 AppUserModelID 설정."""
    if platform.system() != "Windows":
        return
    try:
        import ctypes
        ctypes.windll.shell32.SetCurrentProcessExplicitAppUserModelID(APP_USER_MODEL_ID)
        logging.info(f"AppUserModelID 설정 완료: {APP_USER_MODEL_ID}")
    except (AttributeError, OSError) as e:
        logging.warning(f"AppUserModelID 설정 실패: {e}")


def main() -> int:
    config = load_config()
    setup_logging(config.log_level, data_dir=config.data_dir)
    install_excepthook()
    _set_app_user_model_id()

    # QApplication 인스턴스 생성 전에 호출해야 함
    QApplication.setAttribute(Qt.AA_EnableHighDpiScaling, True)
    app = QApplication(sys.argv)
    app.setApplicationName(APP_NAME)
    # 창이 없어도 트레이에서 계속 실행
    app.setQuitOnLastWindowClosed(False)

    try:
        ensure_alarm_sound(config.resolved_sound_path)
    except OSError as e:
        logging.error(f"기본 알람 사운드를 만들 수 없습니다: {e}")

    # 헬퍼는 메인 스레드에서 생성되어야 큐 호출이 메인 스레드에서 실행됨
    helper = NotificationHelper()
    engine = AlarmClockEngine(
        config,
        notifier=QtNotifier(helper),
        audio=QtAudioPlayer(helper),
        vibrator=LoggingVibrationDriver(),
        prompt=QtAcknowledgmentPrompt(helper),
    )

    tray = AlarmTray(engine, app)
    helper.tray_icon = tray.tray_icon
    tray.show()

    engine.start()
    tray.update_tooltip()

    # --- 앱 종료 시 정리 작업 연결 ---
    def shutdown():
        engine.shutdown()
        helper.cleanup()
        tray.close()
    app.aboutToQuit.connect(shutdown)

    # --- 시그널 핸들러 설정 (Ctrl+C 종료용) ---
    def signal_handler(sig, frame):
        logging.info("Ctrl+C 감지됨. 애플리케이션 종료 중...")
        QApplication.quit()
    signal.signal(signal.SIGINT, signal_handler)
    # 파이썬 시그널 핸들러가 실행될 수 있도록 이벤트 루프를 주기적으로 깨움
    wakeup_timer = QTimer()
    wakeup_timer.timeout.connect(lambda: None)
    wakeup_timer.start(500)

    try:
        logging.info("QApplication 이벤트 루프 시작.")
        exit_code = app.exec_()
        logging.info(f"QApplication 이벤트 루프 종료됨. 종료 코드: {exit_code}")
        return exit_code
    except Exception:
        logging.error("QApplication 이벤트 루프 중 예외 발생:", exc_info=True)
        engine.shutdown()
        helper.cleanup()
        return 1


if __name__ == '__main__':
    sys.exit(main())

import itertools
import logging
import math
import os
import threading
import wave
from typing import Callable, Dict, List

from PyQt5.QtWidgets import QApplication, QSystemTrayIcon
from PyQt5.QtCore import QMetaObject, Qt, Q_ARG, QObject, pyqtSlot, QUrl
from PyQt5.QtMultimedia import QMediaPlayer, QMediaContent

from errors import ResourceError
from ringing import NOTIFICATION_TITLE
from ringing_dialog import RingingDialog


def ensure_alarm_sound(path: str, duration_seconds: float = 1.5) -> None:
    """알람 사운드 파일이 없으면 880Hz 비프음 WAV 파일을 생성합니다."""
    if os.path.exists(path):
        return
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    sample_rate = 24000
    freq = 880.0
    amplitude = 0.4
    samples = int(duration_seconds * sample_rate)
    frames = bytearray()
    for i in range(samples):
        value = int(32767 * amplitude * math.sin(2 * math.pi * freq * i / sample_rate))
        frames.extend(value.to_bytes(2, byteorder="little", signed=True))
    with wave.open(path, "w") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(bytes(frames))
    logging.info(f"기본 알람 사운드 생성됨: {path}")


# --- 메인 GUI 스레드에서 Qt 작업을 수행하는 헬퍼 클래스 ---
class NotificationHelper(QObject):
    """폴링/타이머 스레드에서 들어온 요청을 메인 스레드에서 실행합니다.

    반드시 QApplication이 있는 메인 스레드에서 생성해야 합니다. 각 슬롯은
    QMetaObject.invokeMethod(..., Qt.QueuedConnection)으로 호출됩니다.
    """

    def __init__(self, tray_icon: QSystemTrayIcon = None):
        super().__init__()
        self.tray_icon = tray_icon
        self.players: Dict[int, QMediaPlayer] = {}
        self.dialogs: Dict[int, RingingDialog] = {}
        self.prompt_callbacks: Dict[int, Callable[[], None]] = {}

    def invoke(self, slot_name: str, *args):
        """슬롯을 메인 스레드 이벤트 큐를 통해 비동기로 호출합니다."""
        if QApplication.instance() is None:
            raise ResourceError(f"QApplication 인스턴스가 없어 '{slot_name}'을(를) 실행할 수 없습니다.")
        q_args = [Q_ARG(type(arg), arg) for arg in args]
        ok = QMetaObject.invokeMethod(self, slot_name, Qt.QueuedConnection, *q_args)
        if not ok:
            raise ResourceError(f"메인 스레드 호출 실패: {slot_name}")

    # --- 알림 ---
    @pyqtSlot(str, str)
    def show_tray_message(self, title, body):
        if self.tray_icon is None or not QSystemTrayIcon.supportsMessages():
            logging.warning(f"트레이 알림을 표시할 수 없습니다: {title} - {body}")
            return
        self.tray_icon.showMessage(title, body, QSystemTrayIcon.Information, 10000)
        logging.info(f"트레이 알림 표시됨: {title} - {body}")

    # --- 사운드 (QMediaPlayer) ---
    @pyqtSlot(int, str)
    def start_player(self, handle, sound_path):
        try:
            player = QMediaPlayer(self)
            player.setProperty("playbackHandle", handle)
            player.mediaStatusChanged.connect(self._handle_media_status_changed)
            player.setMedia(QMediaContent(QUrl.fromLocalFile(sound_path)))
            player.setVolume(100)  # QMediaPlayer 볼륨은 0-100
            self.players[handle] = player
            logging.debug(f"QMediaPlayer 생성 (handle {handle}): {sound_path}")
            # 재생 시작은 LoadedMedia 상태에서
        except Exception as e:
            logging.error(f"사운드 재생(QMediaPlayer) 중 예외 발생: {e}", exc_info=True)

    @pyqtSlot(int)
    def stop_player(self, handle):
        player = self.players.get(handle)
        if player is None:
            return
        player.setProperty("stoppedByUser", True)
        if player.state() == QMediaPlayer.PlayingState:
            player.stop()
        logging.debug(f"QMediaPlayer 정지 (handle {handle})")

    @pyqtSlot(int)
    def unload_player(self, handle):
        player = self.players.pop(handle, None)
        if player is None:
            return
        player.setMedia(QMediaContent())
        player.deleteLater()
        logging.debug(f"QMediaPlayer 해제 (handle {handle})")

    def _handle_media_status_changed(self, status):
        """LoadedMedia에서 재생을 시작하고 EndOfMedia에서 처음부터 반복합니다."""
        sender_player = self.sender()
        if not isinstance(sender_player, QMediaPlayer):
            return
        if sender_player.property("stoppedByUser") == True:
            return
        if status == QMediaPlayer.LoadedMedia:
            sender_player.play()
        elif status == QMediaPlayer.EndOfMedia:
            sender_player.setPosition(0)
            sender_player.play()
        elif status in (QMediaPlayer.InvalidMedia, QMediaPlayer.StalledMedia):
            logging.error(f"미디어 오류 발생 (handle {sender_player.property('playbackHandle')}): "
                          f"{sender_player.errorString()}")

    # --- 정지 확인 창 ---
    @pyqtSlot(int, str)
    def show_prompt(self, prompt_id, message):
        dialog = RingingDialog(NOTIFICATION_TITLE, message)
        dialog.finished.connect(lambda _result: self._on_prompt_finished(prompt_id))
        self.dialogs[prompt_id] = dialog
        dialog.show()
        dialog.activateWindow()
        logging.info(f"울림 확인 창 표시됨 (prompt {prompt_id}): {message}")

    @pyqtSlot(int)
    def close_prompt(self, prompt_id):
        # 엔진 쪽에서 닫는 경우에는 정지 콜백을 부르지 않음
        self.prompt_callbacks.pop(prompt_id, None)
        dialog = self.dialogs.pop(prompt_id, None)
        if dialog is not None:
            dialog.close()

    def _on_prompt_finished(self, prompt_id):
        self.dialogs.pop(prompt_id, None)
        callback = self.prompt_callbacks.pop(prompt_id, None)
        if callback is None:
            return
        logging.info(f"사용자가 울림 확인 창에서 Stop을 눌렀습니다 (prompt {prompt_id}).")
        try:
            callback()
        except Exception as e:
            logging.error(f"정지 콜백 실행 중 오류: {e}", exc_info=True)

    def cleanup(self):
        """앱 종료 시 모든 사운드 중지 및 정리."""
        logging.debug(f"애플리케이션 종료 전 QMediaPlayer 정리 시작 (정리할 플레이어 {len(self.players)}개)")
        for handle in list(self.players):
            try:
                self.stop_player(handle)
                self.unload_player(handle)
            except Exception as e:
                logging.error(f"QMediaPlayer 정리 중 오류: {e}", exc_info=True)
        for prompt_id in list(self.dialogs):
            self.close_prompt(prompt_id)
        logging.debug("QMediaPlayer 정리 완료.")


# --- 엔진이 사용하는 협력자 구현 ---
class QtNotifier:
    def __init__(self, helper: NotificationHelper):
        self.helper = helper

    def post_immediate_notification(self, title: str, body: str):
        self.helper.invoke("show_tray_message", title, body)


class QtAudioPlayer:
    """사운드 파일을 반복 재생합니다. play_looped는 재생 핸들(int)을 반환합니다."""

    def __init__(self, helper: NotificationHelper):
        self.helper = helper
        self._handles = itertools.count(1)

    def play_looped(self, sound_path: str) -> int:
        if not sound_path or not os.path.exists(sound_path):
            raise ResourceError(f"사운드 파일 없음: {sound_path}")
        handle = next(self._handles)
        logging.info(f"사운드 재생 시도 (QMediaPlayer, handle {handle}): {sound_path}")
        self.helper.invoke("start_player", handle, sound_path)
        return handle

    def stop(self, handle: int):
        self.helper.invoke("stop_player", handle)

    def unload(self, handle: int):
        self.helper.invoke("unload_player", handle)


class LoggingVibrationDriver:
    """데스크톱에는 진동 모터가 없으므로 진동 요청을 로그로만 남깁니다."""

    def __init__(self):
        self._lock = threading.Lock()
        self.pattern: List[int] = []
        self.active = False

    def start_pattern(self, pattern: List[int], repeat: bool = True):
        with self._lock:
            self.pattern = list(pattern)
            self.active = True
        logging.info(f"진동 패턴 시작 (반복: {repeat}): {pattern}")

    def cancel(self):
        with self._lock:
            was_active = self.active
            self.active = False
        if was_active:
            logging.info("진동 패턴 취소됨.")


class QtAcknowledgmentPrompt:
    """"Stop" 버튼 하나만 있는 항상-위 확인 창을 띄웁니다."""

    def __init__(self, helper: NotificationHelper):
        self.helper = helper
        self._ids = itertools.count(1)

    def present_blocking_prompt(self, message: str, on_stop: Callable[[], None]) -> int:
        prompt_id = next(self._ids)
        # 콜백은 Q_ARG로 넘길 수 없으므로 헬퍼에 미리 등록
        self.helper.prompt_callbacks[prompt_id] = on_stop
        self.helper.invoke("show_prompt", prompt_id, message)
        return prompt_id

    def dismiss(self, prompt_id: int):
        self.helper.invoke("close_prompt", prompt_id)

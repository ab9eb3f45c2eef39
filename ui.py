import logging
from typing import Any, Dict, List, Optional

from PyQt5.QtWidgets import (
    QAction, QApplication, QCheckBox, QComboBox, QDialog, QDialogButtonBox, QHBoxLayout,
    QLabel, QLineEdit, QMenu, QMessageBox, QPushButton, QStyle, QSystemTrayIcon, QVBoxLayout,
)
from PyQt5.QtCore import QObject, pyqtSignal
from PyQt5.QtGui import QIcon

from alarm import WEEKDAYS
from config import resource_path
from errors import ValidationError
from ringing import RingingEvent, RingingState


class AddAlarmDialog(QDialog):
    """새 알람 입력 폼. 결과는 엔진에 넘길 후보 딕셔너리입니다."""

    def __init__(self, previous: Optional[Dict[str, Any]] = None, parent=None):
        super().__init__(parent)
        self.setWindowTitle("New Alarm")
        layout = QVBoxLayout(self)

        # --- 시간 선택 ---
        time_layout = QHBoxLayout()
        self.hour_combo = QComboBox()
        self.hour_combo.addItems([f"{h:02d}" for h in range(24)])
        self.minute_combo = QComboBox()
        self.minute_combo.addItems([f"{m:02d}" for m in range(60)])
        self.hour_combo.setCurrentText("07")
        self.minute_combo.setCurrentText("00")
        time_layout.addWidget(QLabel("Time"))
        time_layout.addWidget(self.hour_combo)
        time_layout.addWidget(QLabel(":"))
        time_layout.addWidget(self.minute_combo)
        layout.addLayout(time_layout)

        # --- 반복 요일 (월요일 시작) ---
        days_layout = QHBoxLayout()
        self.day_buttons: List[QPushButton] = []
        for day in WEEKDAYS:
            button = QPushButton(day[:3])
            button.setCheckable(True)
            self.day_buttons.append(button)
            days_layout.addWidget(button)
        layout.addLayout(days_layout)

        self.alternate_check = QCheckBox("Alternate Weeks")
        layout.addWidget(self.alternate_check)

        self.excluded_edit = QLineEdit()
        self.excluded_edit.setPlaceholderText("Exclude dates: YYYY-MM-DD, YYYY-MM-DD")
        layout.addWidget(self.excluded_edit)

        buttons = QDialogButtonBox(QDialogButtonBox.Save | QDialogButtonBox.Cancel)
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

        if previous:
            self._restore(previous)

    def _restore(self, previous: Dict[str, Any]):
        """검증 실패 후 다시 시도할 때 이전 입력값을 되살립니다."""
        hour, _, minute = str(previous.get("time", "07:00")).partition(":")
        self.hour_combo.setCurrentText(hour)
        self.minute_combo.setCurrentText(minute)
        for day, button in zip(WEEKDAYS, self.day_buttons):
            button.setChecked(day in previous.get("repeatDays", []))
        self.alternate_check.setChecked(bool(previous.get("alternateWeeks")))
        self.excluded_edit.setText(", ".join(previous.get("excludedDates", [])))

    def candidate(self) -> Dict[str, Any]:
        excluded = [part.strip() for part in self.excluded_edit.text().split(",") if part.strip()]
        return {
            "time": f"{self.hour_combo.currentText()}:{self.minute_combo.currentText()}",
            "repeatDays": [day for day, button in zip(WEEKDAYS, self.day_buttons) if button.isChecked()],
            "enabled": True,
            "alternateWeeks": self.alternate_check.isChecked(),
            "excludedDates": excluded,
        }


class AlarmTray(QObject):
    """시스템 트레이 아이콘과 메뉴로 엔진을 조작하는 얇은 UI."""

    # 폴링/타이머 스레드에서 온 상태 변경을 메인 스레드로 넘기기 위한 시그널
    ringing_changed = pyqtSignal(object)

    def __init__(self, engine, app: QApplication):
        super().__init__()
        self.engine = engine
        self.app = app

        icon = QIcon(resource_path("assets/icon.ico"))
        if icon.isNull():
            icon = app.style().standardIcon(QStyle.SP_MessageBoxInformation)
        self.tray_icon = QSystemTrayIcon(icon, parent=app)

        # 트레이 메뉴 생성
        self.menu = QMenu()
        self.new_action = QAction("New Alarm...", parent=self.menu)
        self.alarms_menu = QMenu("Alarms", self.menu)
        self.delete_menu = QMenu("Delete", self.menu)
        self.stop_action = QAction("Stop Alarm", parent=self.menu)
        self.quit_action = QAction("Quit", parent=self.menu)

        self.new_action.triggered.connect(lambda _checked=False: self.add_alarm())
        self.stop_action.triggered.connect(lambda _checked=False: self.engine.stop_ringing())
        self.stop_action.setEnabled(False)
        self.quit_action.triggered.connect(app.quit)
        self.menu.aboutToShow.connect(self.rebuild_alarm_menus)

        self.menu.addAction(self.new_action)
        self.menu.addMenu(self.alarms_menu)
        self.menu.addMenu(self.delete_menu)
        self.menu.addSeparator()
        self.menu.addAction(self.stop_action)
        self.menu.addSeparator()
        self.menu.addAction(self.quit_action)
        self.tray_icon.setContextMenu(self.menu)

        self.ringing_changed.connect(self.on_ringing_changed)
        self._unsubscribe = self.engine.subscribe(self.ringing_changed.emit)
        self.update_tooltip()

    def show(self):
        self.tray_icon.show()
        logging.debug("System tray icon setup complete and shown.")

    def close(self):
        self._unsubscribe()
        self.tray_icon.hide()

    def update_tooltip(self):
        active = sum(1 for alarm in self.engine.get_alarms() if alarm.enabled)
        self.tray_icon.setToolTip(f"Alarm Clock - {active} Active")

    def rebuild_alarm_menus(self):
        """메뉴가 열릴 때마다 알람 목록(토글/삭제) 항목을 다시 만듭니다."""
        self.alarms_menu.clear()
        self.delete_menu.clear()
        alarms = self.engine.get_alarms()
        if not alarms:
            placeholder = self.alarms_menu.addAction("No alarms")
            placeholder.setEnabled(False)
        for alarm in alarms:
            toggle_action = self.alarms_menu.addAction(str(alarm))
            toggle_action.setCheckable(True)
            toggle_action.setChecked(alarm.enabled)
            toggle_action.triggered.connect(lambda _checked, alarm_id=alarm.id: self.toggle_alarm(alarm_id))
            delete_action = self.delete_menu.addAction(str(alarm))
            delete_action.triggered.connect(lambda _checked, a=alarm: self.delete_alarm(a))
        self.delete_menu.setEnabled(bool(alarms))

    def add_alarm(self):
        """새 알람 입력 창을 띄우고, 검증 실패 시 다시 시도할지 묻습니다."""
        previous = None
        while True:
            dialog = AddAlarmDialog(previous)
            if dialog.exec_() != QDialog.Accepted:
                logging.info("새 알람 입력 취소됨.")
                return
            previous = dialog.candidate()
            try:
                self.engine.add_alarm(previous)
            except ValidationError as e:
                logging.warning(f"알람 입력 검증 실패: {e}")
                reply = QMessageBox.warning(None, "Failed to save alarm", f"{e}\n\nPlease try again.",
                                            QMessageBox.Retry | QMessageBox.Cancel, QMessageBox.Retry)
                if reply == QMessageBox.Retry:
                    continue
                return
            self.update_tooltip()
            return

    def toggle_alarm(self, alarm_id: str):
        self.engine.toggle_alarm_by_id(alarm_id)
        self.update_tooltip()

    def delete_alarm(self, alarm):
        reply = QMessageBox.question(None, "Confirm Delete", f"Are you sure you want to delete the alarm '{alarm}'?",
                                     QMessageBox.Yes | QMessageBox.No, QMessageBox.No)
        if reply != QMessageBox.Yes:
            logging.info(f"알람 삭제 취소됨: {alarm}")
            return
        # 메뉴를 연 뒤 목록이 바뀌었을 수 있으므로 ID로 삭제
        self.engine.delete_alarm_by_id(alarm.id)
        self.update_tooltip()

    def on_ringing_changed(self, event: RingingEvent):
        ringing = event.state == RingingState.RINGING
        self.stop_action.setEnabled(ringing)
        if ringing:
            self.tray_icon.setToolTip(f"Alarm Clock - Ringing {event.session.alarm.time}")
        else:
            self.update_tooltip()

from PyQt5.QtWidgets import QApplication, QDialog, QVBoxLayout, QLabel, QPushButton
from PyQt5.QtCore import Qt

RINGING_STYLE = """
    QDialog { background-color: #202124; border: 2px solid #dc3545; border-radius: 12px; }
    QLabel#ringingTitle { color: #ffffff; font-size: 16pt; font-weight: bold; }
    QLabel#ringingMessage { color: #e8eaed; font-size: 12pt; }
    QPushButton#stopButton {
        color: white; background-color: #dc3545; border: none;
        border-radius: 6px; padding: 10px 36px; font-size: 12pt;
    }
    QPushButton#stopButton:hover { background-color: #a71d2a; }
"""


class RingingDialog(QDialog):
    """알람이 울리는 동안 표시되는 확인 창. 유일한 동작은 "Stop" 입니다.

    "Stop"을 누르면 accept()로 닫히고 finished 시그널이 발생합니다. Esc 키로는
    닫히지 않습니다.
    """

    def __init__(self, title: str, message: str, parent=None):
        super().__init__(parent)
        self.setWindowTitle("Alarm")
        self.setWindowFlags(Qt.WindowStaysOnTopHint | Qt.FramelessWindowHint | Qt.Tool)
        self.setAttribute(Qt.WA_DeleteOnClose)
        self.setModal(True)
        self.setStyleSheet(RINGING_STYLE)

        self.title_label = QLabel(title)
        self.title_label.setObjectName("ringingTitle")
        self.message_label = QLabel(message)
        self.message_label.setObjectName("ringingMessage")
        self.message_label.setWordWrap(True)
        self.stop_button = QPushButton("Stop")
        self.stop_button.setObjectName("stopButton")
        self.stop_button.setDefault(True)
        self.stop_button.clicked.connect(self.accept)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(24, 20, 24, 20)
        layout.setSpacing(12)
        for label in (self.title_label, self.message_label):
            label.setAlignment(Qt.AlignCenter)
            layout.addWidget(label)
        layout.addWidget(self.stop_button, alignment=Qt.AlignCenter)

        self._center_on_screen()

    def _center_on_screen(self):
        self.adjustSize()
        geometry = QApplication.primaryScreen().availableGeometry()
        self.move(geometry.center() - self.rect().center())

    def keyPressEvent(self, event):
        if event.key() == Qt.Key_Escape:
            event.ignore()
            return
        super().keyPressEvent(event)

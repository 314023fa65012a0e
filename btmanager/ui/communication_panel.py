"""
Communication Panel - Panel hiển thị dữ liệu nhận, gửi dữ liệu và log
"""
from PyQt6.QtWidgets import (
    QWidget, QVBoxLayout, QHBoxLayout, QPushButton, QTextEdit,
    QLineEdit, QGroupBox, QTabWidget
)
from PyQt6.QtCore import pyqtSignal, pyqtSlot
from PyQt6.QtGui import QFont
from datetime import datetime


class ReceivedDataWidget(QWidget):
    """Ô 'Received Data' chỉ đọc"""

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setup_ui()

    def setup_ui(self):
        """Thiết lập giao diện"""
        layout = QVBoxLayout(self)

        self.data_display = QTextEdit()
        self.data_display.setReadOnly(True)
        self.data_display.setFont(QFont("Consolas", 10))
        self.data_display.setMinimumHeight(150)
        layout.addWidget(self.data_display)

    def set_text(self, text: str):
        """Hiển thị toàn bộ buffer dữ liệu nhận"""
        self.data_display.setPlainText(text)
        scrollbar = self.data_display.verticalScrollBar()
        scrollbar.setValue(scrollbar.maximum())

    def text(self) -> str:
        return self.data_display.toPlainText()


class DataSendWidget(QWidget):
    """Widget gửi dữ liệu"""

    # Signals
    data_send_requested = pyqtSignal(str)

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setup_ui()

    def setup_ui(self):
        """Thiết lập giao diện"""
        layout = QHBoxLayout(self)

        self.send_input = QLineEdit()
        self.send_input.setPlaceholderText("Text to send...")
        self.send_input.returnPressed.connect(self._send_data)

        self.send_button = QPushButton("Send")
        self.send_button.clicked.connect(self._send_data)
        self.send_button.setEnabled(False)

        layout.addWidget(self.send_input)
        layout.addWidget(self.send_button)

    def _send_data(self):
        """Gửi dữ liệu từ input"""
        text = self.send_input.text().strip()
        if text and self.send_button.isEnabled():
            self.data_send_requested.emit(text)
            self.send_input.clear()

    def set_send_enabled(self, enabled: bool):
        """Thiết lập trạng thái có thể gửi"""
        self.send_button.setEnabled(enabled)


class LogWidget(QWidget):
    """Widget hiển thị log hệ thống"""

    LEVEL_COLORS = {
        "ERROR": "red",
        "WARNING": "orange",
        "SUCCESS": "green",
    }

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setup_ui()

    def setup_ui(self):
        """Thiết lập giao diện"""
        layout = QVBoxLayout(self)

        self.log_display = QTextEdit()
        self.log_display.setReadOnly(True)
        self.log_display.setFont(QFont("Consolas", 9))
        layout.addWidget(self.log_display)

        control_layout = QHBoxLayout()

        self.clear_log_button = QPushButton("Clear Log")
        self.clear_log_button.clicked.connect(self.clear_log)

        control_layout.addWidget(self.clear_log_button)
        control_layout.addStretch()

        layout.addLayout(control_layout)

    def add_log_message(self, message: str, level: str = "INFO"):
        """Thêm tin nhắn log"""
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        formatted_message = f"[{timestamp}] [{level}] {message}"

        # Màu sắc theo level
        color = self.LEVEL_COLORS.get(level)
        if color:
            formatted_message = f'<span style="color: {color};">{formatted_message}</span>'

        self.log_display.append(formatted_message)

    def clear_log(self):
        """Xóa tất cả log"""
        self.log_display.clear()


class CommunicationPanel(QWidget):
    """Panel dữ liệu: tab dữ liệu nhận/gửi và tab log"""

    # Signals
    data_send_requested = pyqtSignal(str)

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setup_ui()
        self.connect_signals()

    def setup_ui(self):
        """Thiết lập giao diện"""
        layout = QVBoxLayout(self)

        self.tab_widget = QTabWidget()

        # === Data Tab ===
        data_tab = QWidget()
        data_layout = QVBoxLayout(data_tab)

        display_group = QGroupBox("Received Data:")
        display_layout = QVBoxLayout(display_group)
        self.received_data_widget = ReceivedDataWidget()
        display_layout.addWidget(self.received_data_widget)
        data_layout.addWidget(display_group)

        send_group = QGroupBox("Send Data")
        send_layout = QVBoxLayout(send_group)
        self.data_send_widget = DataSendWidget()
        send_layout.addWidget(self.data_send_widget)
        data_layout.addWidget(send_group)

        self.tab_widget.addTab(data_tab, "Data")

        # === Log Tab ===
        self.log_widget = LogWidget()
        self.tab_widget.addTab(self.log_widget, "Log")

        layout.addWidget(self.tab_widget)

    def connect_signals(self):
        """Kết nối các signals"""
        self.data_send_widget.data_send_requested.connect(self.data_send_requested.emit)

    @pyqtSlot(str)
    def on_received_data_changed(self, text: str):
        self.received_data_widget.set_text(text)

    def on_connection_changed(self, is_connected: bool):
        """Xử lý khi trạng thái kết nối thay đổi"""
        self.data_send_widget.set_send_enabled(is_connected)

    @pyqtSlot(str, str)
    def add_log_message(self, message: str, level: str = "INFO"):
        """Thêm message vào log"""
        self.log_widget.add_log_message(message, level)

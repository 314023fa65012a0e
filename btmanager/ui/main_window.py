"""
Main Window - Màn hình chính Bluetooth Device Manager
"""
from datetime import datetime
from typing import Optional
from PyQt6.QtWidgets import (
    QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QPushButton, QLabel,
    QMessageBox, QStatusBar
)
from PyQt6.QtCore import Qt, pyqtSlot
from PyQt6.QtGui import QCloseEvent, QAction, QKeySequence

from .. import __version__
from ..bluetooth import BluetoothManager, BluetoothDevice
from ..core import HomeController, AppSettings
from .communication_panel import CommunicationPanel
from .device_list_widget import DeviceDiscoveryDialog

BUTTON_STYLE = (
    "QPushButton { background-color: #005f56; color: white; border-radius: 6px; padding: 8px 16px; }"
    "QPushButton:hover { background-color: #007a6f; }"
    "QPushButton:pressed { background-color: #004a43; }"
)


class HomeWindow(QMainWindow):
    """Cửa sổ chính: quét, kết nối, đọc dữ liệu và đồng hồ"""

    def __init__(self, settings: Optional[AppSettings] = None,
                 manager: Optional[BluetoothManager] = None,
                 controller: Optional[HomeController] = None):
        super().__init__()
        if controller is not None:
            self.controller = controller
            self.bluetooth_manager = controller.manager
        else:
            self.bluetooth_manager = manager if manager is not None else BluetoothManager()
            self.controller = HomeController(
                self.bluetooth_manager,
                settings=settings,
                confirm=self._confirm,
            )

        self.setup_ui()
        self.connect_signals()
        self.controller.start_clock()

    def setup_ui(self):
        """Thiết lập giao diện người dùng"""
        self.setWindowTitle("Bluetooth Device Manager")
        self.setGeometry(100, 100, 520, 760)

        central_widget = QWidget()
        self.setCentralWidget(central_widget)
        layout = QVBoxLayout(central_widget)

        # Header
        self.header_label = QLabel("Bluetooth Device Manager")
        self.header_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.header_label.setStyleSheet("font-size: 20px; font-weight: bold; padding: 12px;")
        layout.addWidget(self.header_label)

        # Discover / Disconnect
        button_row = QHBoxLayout()
        self.discover_button = QPushButton("Discover Devices")
        self.discover_button.setStyleSheet(BUTTON_STYLE)
        self.disconnect_button = QPushButton("Disconnect")
        self.disconnect_button.setStyleSheet(BUTTON_STYLE)
        button_row.addWidget(self.discover_button)
        button_row.addWidget(self.disconnect_button)
        layout.addLayout(button_row)

        # Connection status
        self.connection_status = QLabel("Not Connected")
        self.connection_status.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.connection_status.setStyleSheet("color: red; font-weight: bold; padding: 8px;")
        layout.addWidget(self.connection_status)

        # Read
        read_row = QHBoxLayout()
        self.read_button = QPushButton("Read Data")
        self.read_button.setStyleSheet(BUTTON_STYLE)
        read_row.addWidget(self.read_button)
        layout.addLayout(read_row)

        # Received data + log
        self.communication_panel = CommunicationPanel()
        layout.addWidget(self.communication_panel, 1)

        # Clock
        self.date_label = QLabel("Date:")
        self.time_label = QLabel("Time:")
        layout.addWidget(self.date_label)
        layout.addWidget(self.time_label)

        # Discovery dialog
        self.device_dialog = DeviceDiscoveryDialog(self)

        # Status bar
        self.status_bar = QStatusBar()
        self.setStatusBar(self.status_bar)
        self.status_bar.showMessage("Ready")

        self._create_menus()

    def connect_signals(self):
        """Kết nối các signals"""
        # Buttons
        self.discover_button.clicked.connect(self.controller.handle_discover_devices)
        self.disconnect_button.clicked.connect(self.controller.disconnect_device)
        self.read_button.clicked.connect(self.controller.read_data_from_device)
        self.communication_panel.data_send_requested.connect(self.controller.send_data)

        # Dialog
        self.device_dialog.device_selected.connect(self.controller.connect_to_device)
        self.device_dialog.rejected.connect(lambda: self.controller.set_modal_visible(False))

        # Controller state
        self.controller.clock_ticked.connect(self._update_clock)
        self.controller.devices_changed.connect(self.device_dialog.set_devices)
        self.controller.loading_changed.connect(self.device_dialog.set_scanning)
        self.controller.modal_visibility_changed.connect(self._on_modal_visibility_changed)
        self.controller.connected_device_changed.connect(self._on_connected_device_changed)
        self.controller.received_data_changed.connect(self.communication_panel.on_received_data_changed)
        self.controller.alert_requested.connect(self._show_alert)
        self.controller.log_message.connect(self.communication_panel.add_log_message)

        # Bluetooth manager signals
        self.bluetooth_manager.connection_established.connect(self._on_connection_established)
        self.bluetooth_manager.error_occurred.connect(self._on_error_occurred)

    # === Menus ===
    def _create_menus(self):
        file_menu = self.menuBar().addMenu("&File")

        self.act_quit = QAction("Quit", self)
        self.act_quit.setShortcut(QKeySequence("Ctrl+Q"))
        self.act_quit.triggered.connect(self.close)
        file_menu.addAction(self.act_quit)

        device_menu = self.menuBar().addMenu("&Device")

        self.act_scan = QAction("Discover Devices", self)
        self.act_scan.setShortcut(QKeySequence("F5"))
        self.act_scan.triggered.connect(self.controller.handle_discover_devices)
        device_menu.addAction(self.act_scan)

        self.act_read = QAction("Read Data", self)
        self.act_read.setShortcut(QKeySequence("Ctrl+R"))
        self.act_read.triggered.connect(self.controller.read_data_from_device)
        device_menu.addAction(self.act_read)

        self.act_disconnect = QAction("Disconnect", self)
        self.act_disconnect.setShortcut(QKeySequence("Ctrl+Shift+K"))
        self.act_disconnect.triggered.connect(self.controller.disconnect_device)
        device_menu.addAction(self.act_disconnect)

        help_menu = self.menuBar().addMenu("&Help")

        self.act_about = QAction("About", self)
        self.act_about.triggered.connect(self._action_about)
        help_menu.addAction(self.act_about)

    def _action_about(self):
        QMessageBox.information(
            self,
            "About",
            f"Bluetooth Device Manager\nVersion {__version__}\n"
            f"Backend: {self.bluetooth_manager.backend_name}"
        )

    # === Controller Event Handlers ===

    @pyqtSlot(object)
    def _update_clock(self, now: datetime):
        self.date_label.setText(f"Date: {now.strftime('%x')}")
        self.time_label.setText(f"Time: {now.strftime('%X')}")

    @pyqtSlot(bool)
    def _on_modal_visibility_changed(self, visible: bool):
        if visible:
            self.device_dialog.show()
            self.device_dialog.raise_()
        else:
            self.device_dialog.hide()

    @pyqtSlot(object)
    def _on_connected_device_changed(self, device: Optional[BluetoothDevice]):
        if device is not None:
            self.connection_status.setText(f"Connected: {device.name or 'Unknown Device'}")
            self.connection_status.setStyleSheet("color: green; font-weight: bold; padding: 8px;")
            self.status_bar.showMessage(f"Connected to {device}")
        else:
            self.connection_status.setText("Not Connected")
            self.connection_status.setStyleSheet("color: red; font-weight: bold; padding: 8px;")
            self.status_bar.showMessage("No connection")
        self.communication_panel.on_connection_changed(device is not None)

    @pyqtSlot(str)
    def _on_connection_established(self, device_address: str):
        self.communication_panel.add_log_message(f"Link established with {device_address}", "SUCCESS")

    @pyqtSlot(str)
    def _on_error_occurred(self, error_message: str):
        """Callback khi có lỗi từ Bluetooth manager"""
        self.communication_panel.add_log_message(error_message, "ERROR")
        self.status_bar.showMessage(f"Error: {error_message}")

    # === Dialogs ===

    @pyqtSlot(str, str)
    def _show_alert(self, title: str, message: str):
        QMessageBox.information(self, title, message)

    def _confirm(self, title: str, message: str) -> bool:
        reply = QMessageBox.question(
            self,
            title,
            message,
            QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No
        )
        return reply == QMessageBox.StandardButton.Yes

    # === Window Events ===

    def closeEvent(self, event: QCloseEvent):
        """Xử lý khi đóng cửa sổ"""
        disconnect = False
        if self.controller.is_connected():
            disconnect = self._confirm("Confirm", "Disconnect from the device before exiting?")
        self.controller.shutdown(disconnect=disconnect)
        self.device_dialog.hide()
        event.accept()

"""
Device List Widget - Hộp thoại hiển thị danh sách thiết bị Bluetooth tìm được
"""
from typing import List, Optional
from PyQt6.QtWidgets import (
    QDialog, QVBoxLayout, QHBoxLayout, QPushButton, QListWidget,
    QListWidgetItem, QProgressBar, QLabel
)
from PyQt6.QtCore import Qt, pyqtSignal, pyqtSlot
from ..bluetooth import BluetoothDevice


class DeviceDiscoveryDialog(QDialog):
    """Hộp thoại 'Available Devices': chọn thiết bị để kết nối"""

    # Signals
    device_selected = pyqtSignal(object)  # BluetoothDevice

    def __init__(self, parent=None):
        super().__init__(parent)
        self._has_scanned = False
        self.setup_ui()

    def setup_ui(self):
        """Thiết lập giao diện"""
        self.setWindowTitle("Available Devices")
        self.setModal(True)
        self.resize(360, 420)

        layout = QVBoxLayout(self)

        title = QLabel("Available Devices")
        title.setStyleSheet("font-size: 16px; font-weight: bold;")
        layout.addWidget(title)

        # Progress bar
        self.scan_progress = QProgressBar()
        self.scan_progress.setVisible(False)
        layout.addWidget(self.scan_progress)

        self.empty_label = QLabel("No devices found")
        self.empty_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.empty_label.setVisible(False)
        layout.addWidget(self.empty_label)

        # Device list
        self.device_list = QListWidget()
        self.device_list.itemDoubleClicked.connect(self._on_device_double_clicked)
        layout.addWidget(self.device_list)

        button_layout = QHBoxLayout()

        self.connect_button = QPushButton("Connect")
        self.connect_button.clicked.connect(self._on_connect_clicked)

        self.close_button = QPushButton("Close")
        self.close_button.clicked.connect(self.reject)

        button_layout.addWidget(self.connect_button)
        button_layout.addStretch()
        button_layout.addWidget(self.close_button)
        layout.addLayout(button_layout)

    @pyqtSlot(QListWidgetItem)
    def _on_device_double_clicked(self, item: QListWidgetItem):
        """Xử lý khi double-click vào thiết bị"""
        device = item.data(Qt.ItemDataRole.UserRole)
        if device:
            self.device_selected.emit(device)

    @pyqtSlot()
    def _on_connect_clicked(self):
        device = self.get_selected_device()
        if device:
            self.device_selected.emit(device)

    def set_devices(self, devices: List[BluetoothDevice]):
        """Thay toàn bộ danh sách bằng kết quả quét mới"""
        self._has_scanned = True
        self.device_list.clear()
        for device in devices:
            item = QListWidgetItem(str(device))
            item.setData(Qt.ItemDataRole.UserRole, device)
            self.device_list.addItem(item)
        self._refresh_empty_label()

    def set_scanning(self, is_scanning: bool):
        """Thiết lập trạng thái scanning"""
        self.scan_progress.setVisible(is_scanning)
        self.device_list.setVisible(not is_scanning)
        self.connect_button.setEnabled(not is_scanning)

        if is_scanning:
            self.scan_progress.setRange(0, 0)  # Indeterminate progress
        else:
            self.scan_progress.setRange(0, 100)
            self.scan_progress.setValue(0)
        self._refresh_empty_label()

    def _refresh_empty_label(self):
        scanning = self.scan_progress.isVisibleTo(self)
        self.empty_label.setVisible(
            self._has_scanned and not scanning and self.device_list.count() == 0
        )

    def device_count(self) -> int:
        return self.device_list.count()

    def get_selected_device(self) -> Optional[BluetoothDevice]:
        """Lấy thiết bị đang được chọn"""
        current_item = self.device_list.currentItem()
        if current_item:
            return current_item.data(Qt.ItemDataRole.UserRole)
        return None

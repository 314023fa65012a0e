"""
Home Controller - Trạng thái và thao tác của màn hình chính
Quét thiết bị, kết nối, ngắt kết nối, đọc dữ liệu và đồng hồ
"""
import base64
import binascii
import threading
from datetime import datetime
from typing import Callable, List, Optional, Set

from PyQt6.QtCore import QObject, QTimer, pyqtSignal, pyqtSlot

from ..bluetooth import (
    BluetoothDevice,
    BluetoothManager,
    ConnectionFailedError,
    Subscription,
)
from ..bluetooth.constants import CONNECTION_FAILED_MARKER, CONNECTION_TYPE_BINARY
from .settings import AppSettings

ConfirmCallback = Callable[[str, str], bool]

REJECTED_MARKERS = (
    CONNECTION_FAILED_MARKER.lower(),
    "connection failed",
    "connection refused",
    "rejected",
)


def is_connection_rejected(error: BaseException) -> bool:
    """Lỗi kết nối bị từ chối / ghép nối thất bại"""
    if isinstance(error, ConnectionFailedError):
        return True
    text = str(error).lower()
    return any(marker in text for marker in REJECTED_MARKERS)


class _TaskSignals(QObject):
    """Đưa kết quả từ worker thread về thread giao diện"""
    succeeded = pyqtSignal(object)
    failed = pyqtSignal(object)
    finished = pyqtSignal()


class HomeController(QObject):
    """Controller của màn hình chính, giữ toàn bộ trạng thái giao diện"""

    # Signals để cập nhật giao diện
    clock_ticked = pyqtSignal(object)  # datetime
    devices_changed = pyqtSignal(object)  # List[BluetoothDevice]
    loading_changed = pyqtSignal(bool)
    modal_visibility_changed = pyqtSignal(bool)
    connected_device_changed = pyqtSignal(object)  # Optional[BluetoothDevice]
    received_data_changed = pyqtSignal(str)
    alert_requested = pyqtSignal(str, str)  # title, message
    log_message = pyqtSignal(str, str)  # message, level

    # Sự kiện dữ liệu từ thread nhận, chuyển về thread giao diện
    _data_event = pyqtSignal(object)

    def __init__(self, manager: Optional[BluetoothManager] = None,
                 settings: Optional[AppSettings] = None,
                 confirm: Optional[ConfirmCallback] = None,
                 threaded: bool = True,
                 parent: Optional[QObject] = None):
        super().__init__(parent)
        self.manager = manager if manager is not None else BluetoothManager()
        self.settings = settings or AppSettings()
        self.threaded = threaded
        self._confirm = confirm

        # Trạng thái giao diện
        self.current_datetime = datetime.now()
        self.devices: List[BluetoothDevice] = []
        self.connected_device: Optional[BluetoothDevice] = None
        self.modal_visible = False
        self.is_loading = False
        self.received_data = ""

        self._connecting = False
        self._data_subscription: Optional[Subscription] = None
        self._tasks: Set[_TaskSignals] = set()

        self._clock_timer = QTimer(self)
        self._clock_timer.setInterval(self.settings.clock_interval_ms)
        self._clock_timer.timeout.connect(self._tick)

        self._data_event.connect(self._handle_data_event)
        self.manager.connection_lost.connect(self._on_connection_lost)

    # === Helpers ===

    def _log(self, message: str, level: str = "INFO"):
        print(message)
        self.log_message.emit(message, level)

    def _alert(self, title: str, message: str):
        self.alert_requested.emit(title, message)

    def _run_task(self, name: str, func: Callable[[], object],
                  on_success: Callable[[object], None],
                  on_error: Callable[[BaseException], None],
                  on_finished: Optional[Callable[[], None]] = None):
        """Chạy lời gọi tới thư viện Bluetooth trong thread riêng (hoặc trực tiếp nếu threaded=False)"""
        if not self.threaded:
            try:
                result = func()
            except Exception as e:
                on_error(e)
            else:
                on_success(result)
            finally:
                if on_finished:
                    on_finished()
            return

        signals = _TaskSignals()
        signals.succeeded.connect(on_success)
        signals.failed.connect(on_error)
        if on_finished:
            signals.finished.connect(on_finished)
        signals.finished.connect(lambda: self._tasks.discard(signals))
        self._tasks.add(signals)

        def worker():
            try:
                result = func()
            except Exception as e:
                signals.failed.emit(e)
            else:
                signals.succeeded.emit(result)
            finally:
                signals.finished.emit()

        thread = threading.Thread(target=worker, name=f"bt-{name}")
        thread.daemon = True
        thread.start()

    def _connection_type_for(self, device: BluetoothDevice) -> str:
        return device.connection_type or self.settings.connection_type

    def _decode_payload(self, data: Optional[str], device: BluetoothDevice) -> str:
        """Giải mã dữ liệu nhận được (base64 ở chế độ binary)"""
        if not data:
            return ""
        if self._connection_type_for(device) != CONNECTION_TYPE_BINARY:
            return data
        try:
            raw = base64.b64decode(data, validate=True)
        except binascii.Error:
            # Không phải base64, hiển thị nguyên văn
            return data
        return raw.decode(self.settings.charset, errors="replace")

    def _append_received(self, text: str):
        if self.received_data:
            self.received_data = f"{self.received_data}\n{text}"
        else:
            self.received_data = text
        self.received_data_changed.emit(self.received_data)

    def _clear_received(self):
        self.received_data = ""
        self.received_data_changed.emit(self.received_data)

    def _set_loading(self, is_loading: bool):
        self.is_loading = is_loading
        self.loading_changed.emit(is_loading)

    def _set_connected_device(self, device: Optional[BluetoothDevice]):
        self.connected_device = device
        self.connected_device_changed.emit(device)

    def set_modal_visible(self, visible: bool):
        """Hiện/ẩn hộp thoại danh sách thiết bị"""
        if self.modal_visible == visible:
            return
        self.modal_visible = visible
        self.modal_visibility_changed.emit(visible)

    def is_connected(self) -> bool:
        return self.connected_device is not None

    # === Clock ===

    def start_clock(self):
        """Cập nhật ngày giờ mỗi giây"""
        self._tick()
        self._clock_timer.start()

    def stop_clock(self):
        self._clock_timer.stop()

    def is_clock_running(self) -> bool:
        return self._clock_timer.isActive()

    @pyqtSlot()
    def _tick(self):
        self.current_datetime = datetime.now()
        self.clock_ticked.emit(self.current_datetime)

    # === Adapter ===

    def enable_bluetooth(self, on_finished: Optional[Callable[[bool], None]] = None):
        """
        Bật Bluetooth nếu đang tắt (hỏi người dùng trước)

        Kiểm tra trạng thái và bật adapter chạy trong worker thread,
        hộp thoại xác nhận hiện trên thread giao diện.

        Args:
            on_finished: Gọi với True nếu adapter đang bật sau khi xử lý xong
        """
        def _done(enabled: bool):
            if on_finished:
                on_finished(enabled)

        def _on_error(error):
            self._log(f"Error enabling Bluetooth: {error}", "ERROR")
            _done(False)

        def _on_state(enabled):
            if enabled:
                _done(True)
                return

            consent = False
            if self._confirm is not None:
                consent = self._confirm(
                    "Bluetooth Disabled",
                    "Bluetooth is off. Would you like to enable it?",
                )
            if not consent:
                self._log("Bluetooth left disabled by user", "WARNING")
                _done(False)
                return

            self._run_task("enable", self.manager.enable, _on_enabled, _on_error)

        def _on_enabled(_):
            self._log("Bluetooth enabled", "SUCCESS")
            _done(True)

        self._run_task("adapter-state", self.manager.is_bluetooth_enabled, _on_state, _on_error)

    # === Discovery ===

    def handle_discover_devices(self):
        """Bật adapter (nếu cần), mở hộp thoại và bắt đầu quét thiết bị"""
        self.enable_bluetooth(lambda _: self._open_discovery())

    def _open_discovery(self):
        self.set_modal_visible(True)
        self.discover_devices()

    def discover_devices(self) -> bool:
        """Quét thiết bị, bỏ qua nếu đang có lượt quét khác"""
        if self.is_loading:
            self._log("Discovery already in progress", "WARNING")
            return False

        self._set_loading(True)
        self._log(f"Discovering devices for {self.settings.scan_duration} seconds...")
        self._run_task(
            "discovery",
            lambda: self.manager.start_discovery(self.settings.scan_duration),
            self._on_discovery_finished,
            self._on_discovery_failed,
            lambda: self._set_loading(False),
        )
        return True

    def _on_discovery_finished(self, devices):
        self.devices = list(devices or [])
        self._log(f"Discovered devices: {', '.join(str(d) for d in self.devices) or 'none'}")
        self.devices_changed.emit(self.devices)

    def _on_discovery_failed(self, error):
        self._log(f"Error discovering devices: {error}", "ERROR")

    # === Connection ===

    def connect_to_device(self, device: BluetoothDevice) -> bool:
        """Kết nối tới thiết bị được chọn, bỏ qua nếu đang có lượt kết nối khác"""
        if self._connecting:
            self._log("A connection attempt is already in progress", "WARNING")
            return False

        self._connecting = True
        self._log(f"Attempting to connect to device: {device.name} ({device.address})")
        self._run_task(
            "connect",
            lambda: device.connect(
                connection_type=self.settings.connection_type,
                delimiter=self.settings.delimiter,
                charset=self.settings.charset,
            ),
            lambda connected: self._on_connect_result(device, connected),
            lambda error: self._on_connect_failed(device, error),
            self._on_connect_finished,
        )
        return True

    def _on_connect_result(self, device: BluetoothDevice, connected):
        if not connected:
            self._log(f"Failed to connect to device: {device.name} ({device.address})", "WARNING")
            return

        self._log(f"Successfully connected to: {device.name} ({device.address})", "SUCCESS")
        previous = self.connected_device
        self._remove_data_listener()
        if previous is not None and previous is not device:
            self._release_device(previous)

        self._set_connected_device(device)
        self._alert("Connected", f"Successfully connected to {device.name}")
        self.set_modal_visible(False)
        self.start_listening_for_data(device)

    def _on_connect_failed(self, device: BluetoothDevice, error):
        self._log(f"Error connecting to device: {error}", "ERROR")
        if is_connection_rejected(error):
            self._alert(
                "Connection Failed",
                f"Could not connect to {device.name} ({device.address}). "
                "Pairing might have been rejected.",
            )
        else:
            self._alert("Error", f"An error occurred while connecting to {device.name}.")
        self._log(f"Failed to connect to device: {device.name} ({device.address})", "WARNING")

    def _on_connect_finished(self):
        self._connecting = False

    def _release_device(self, device: BluetoothDevice):
        """Ngắt thiết bị cũ khi chuyển sang thiết bị mới"""
        self._run_task(
            "release",
            device.disconnect,
            lambda _: self._log(f"Released previous device {device}"),
            lambda error: self._log(f"Error releasing previous device {device}: {error}", "ERROR"),
        )

    # === Data ===

    def start_listening_for_data(self, device: BluetoothDevice) -> Optional[Callable[[], None]]:
        """
        Đăng ký nhận dữ liệu từ thiết bị

        Returns:
            Hàm hủy đăng ký, hoặc None nếu không đăng ký được
        """
        try:
            subscription = device.on_data_received(self._data_event.emit)
        except Exception as e:
            self._log(f"Error starting data listener: {e}", "ERROR")
            return None
        self._data_subscription = subscription
        return subscription.remove

    def _remove_data_listener(self):
        if self._data_subscription is not None:
            self._data_subscription.remove()
            self._data_subscription = None

    def has_data_listener(self) -> bool:
        return self._data_subscription is not None and not self._data_subscription.removed

    @pyqtSlot(object)
    def _handle_data_event(self, event):
        device = self.connected_device
        if device is None or event.get("device") != device.address:
            return
        try:
            text = self._decode_payload(event.get("data"), device)
        except Exception as e:
            self._log(f"Error decoding received data: {e}", "ERROR")
            return
        self._log(f"Received data: {text}")
        self._append_received(text)

    def read_data_from_device(self) -> bool:
        """Đọc một lần dữ liệu từ thiết bị đang kết nối"""
        device = self.connected_device
        if device is None:
            self._alert("No Device Connected", "Please connect to a device first.")
            return False

        def _read():
            data = device.read()
            if data is None:
                return None
            return self._decode_payload(data, device)

        self._run_task(
            "read",
            _read,
            self._on_read_result,
            self._on_read_failed,
        )
        return True

    def _on_read_result(self, text):
        if text is None:
            self._log("Read data: nothing available")
            self._alert("No Data", "No data available from the device.")
            return
        self._log(f"Read data: {text}")
        self._append_received(text)
        self._alert("Data Received", f"Data: {text}")

    def _on_read_failed(self, error):
        self._log(f"Error reading data: {error}", "ERROR")
        self._alert("Error", "Failed to read data from the device.")

    def send_data(self, text: str) -> bool:
        """Gửi chuỗi tới thiết bị đang kết nối"""
        if not text:
            return False
        device = self.connected_device
        if device is None:
            self._alert("No Device Connected", "Please connect to a device first.")
            return False

        self._run_task(
            "write",
            lambda: device.write(text),
            lambda _: self._log(f"Sent: {text}"),
            self._on_send_failed,
        )
        return True

    def _on_send_failed(self, error):
        self._log(f"Error sending data: {error}", "ERROR")
        self._alert("Error", "Failed to send data to the device.")

    # === Disconnect ===

    def disconnect_device(self) -> bool:
        """Ngắt kết nối thiết bị hiện tại"""
        device = self.connected_device
        if device is None:
            self._log("No device connected")
            return False

        self._run_task(
            "disconnect",
            device.disconnect,
            lambda disconnected: self._on_disconnected(device, disconnected),
            lambda error: self._on_disconnect_failed(device, error),
        )
        return True

    def _reset_connection_state(self):
        self._remove_data_listener()
        self._set_connected_device(None)
        self._clear_received()

    def _on_disconnected(self, device: BluetoothDevice, disconnected):
        if self.connected_device is not device:
            # Lượt ngắt kết nối trước hoặc connection_lost đã xử lý xong
            self._log(f"{device} is already disconnected")
            return
        self._reset_connection_state()
        if not disconnected:
            self._log(f"{device} was no longer connected", "WARNING")
            return
        self._log(f"Disconnected from {device}", "WARNING")
        self._alert("Disconnected", f"Successfully disconnected from {device.name}")

    def _on_disconnect_failed(self, device: BluetoothDevice, error):
        self._log(f"Error disconnecting from device: {error}", "ERROR")
        if self.connected_device is device and not device.is_connected():
            self._reset_connection_state()
            self._alert("Error", f"An error occurred while disconnecting from {device.name}.")

    @pyqtSlot(str)
    def _on_connection_lost(self, device_address: str):
        device = self.connected_device
        if device is None or device.address != device_address:
            return
        self._reset_connection_state()
        self._log(f"Connection to {device} lost", "ERROR")
        self._alert("Connection Lost", f"The connection to {device.name} was lost.")

    # === Teardown ===

    def shutdown(self, disconnect: bool = False):
        """Dừng đồng hồ, hủy listener; ngắt kết nối nếu được yêu cầu"""
        self.stop_clock()
        self._remove_data_listener()
        device = self.connected_device
        if disconnect and device is not None:
            try:
                device.disconnect()
            except Exception as e:
                self._log(f"Error disconnecting from device: {e}", "ERROR")
            self._set_connected_device(None)
            self._clear_received()

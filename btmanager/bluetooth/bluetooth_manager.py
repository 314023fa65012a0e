"""
Bluetooth Manager - Quản lý adapter, quét thiết bị và kết nối Bluetooth Classic
Hỗ trợ đa nền tảng (PyBluez trên Linux, cổng COM SPP qua pyserial trên Windows)
"""
import re
import subprocess
import threading
import time
from typing import Dict, List, Optional, Union

from PyQt6.QtCore import QObject, pyqtSignal

# PyBluez có thể không khả dụng trên Windows (lỗi build). Thử import an toàn
try:
    import bluetooth  # type: ignore
except Exception:  # ImportError hoặc lỗi môi trường build
    bluetooth = None  # type: ignore

# Sử dụng pyserial làm backend cho SPP qua cổng COM
try:
    import serial
    from serial.tools import list_ports
except Exception:
    serial = None  # type: ignore
    list_ports = None  # type: ignore

from .connection import DataListener, DeviceConnection, Subscription
from .constants import (
    CONNECTION_TYPE_BINARY,
    CONNECTION_TYPES,
    DEFAULT_CHARSET,
    DEFAULT_DELIMITER,
    DEFAULT_RFCOMM_PORT,
    DEFAULT_SCAN_DURATION,
    DEFAULT_SERIAL_BAUDRATE,
    SERIAL_BUFFER_SIZE,
    SPP_UUID,
    UNKNOWN_DEVICE_NAME,
)
from .exceptions import (
    BluetoothError,
    BluetoothUnavailableError,
    ConnectionFailedError,
    NotConnectedError,
)

MAC_ADDRESS_RE = re.compile(r"^[0-9A-Fa-f]{2}(:[0-9A-Fa-f]{2}){5}$")
BLUETOOTHCTL_TIMEOUT = 10


def _run_btctl(args: List[str], timeout: int = BLUETOOTHCTL_TIMEOUT) -> subprocess.CompletedProcess:
    """Chạy bluetoothctl với tham số cho trước"""
    return subprocess.run(
        ["bluetoothctl"] + args,
        capture_output=True,
        text=True,
        timeout=timeout,
    )


class SerialSocketAdapter:
    """Adapter cung cấp API tương tự bluetooth.BluetoothSocket cho pyserial.Serial"""

    def __init__(self, com_port: str, baudrate: int = DEFAULT_SERIAL_BAUDRATE, timeout: float = 1.0):
        if serial is None:
            raise BluetoothUnavailableError("PySerial is not installed")
        # open rỗng, để set timeout trước khi open
        self._serial = serial.Serial()
        self._serial.port = com_port
        self._serial.baudrate = baudrate
        self._serial.timeout = timeout
        # Giảm độ trễ đọc liên byte để gom chunk nhanh hơn trên Windows
        self._serial.inter_byte_timeout = 0.02
        # Tắt mọi kiểu flow control để tránh chặn buffer trên SPP
        self._serial.rtscts = False
        self._serial.dsrdtr = False
        self._serial.xonxoff = False
        self._serial.write_timeout = 1.0
        self._serial.open()
        # Cho driver ổn định kết nối SPP
        time.sleep(0.1)
        self._serial.reset_input_buffer()
        self._serial.reset_output_buffer()
        # Chỉ có trên Windows
        if hasattr(self._serial, "set_buffer_size"):
            self._serial.set_buffer_size(rx_size=SERIAL_BUFFER_SIZE, tx_size=SERIAL_BUFFER_SIZE)

    def settimeout(self, timeout: float):
        self._serial.timeout = timeout

    def send(self, data: bytes):
        written = self._serial.write(data)
        self._serial.flush()
        return written

    def recv(self, num_bytes: int) -> bytes:
        data = self._serial.read(num_bytes)
        if not data:
            # pyserial trả về b'' khi hết timeout, không phải EOF
            raise TimeoutError("timed out")
        return data

    def close(self):
        self._serial.close()


class BluetoothDevice:
    """Lớp đại diện cho một thiết bị Bluetooth và kết nối tới nó"""

    def __init__(self, address: str, name: Optional[str] = UNKNOWN_DEVICE_NAME,
                 manager: Optional["BluetoothManager"] = None):
        self.address = address
        self.name = name or UNKNOWN_DEVICE_NAME
        self.manager = manager
        self._connection: Optional[DeviceConnection] = None

    def __str__(self):
        return f"{self.name} ({self.address})"

    def __repr__(self):
        return f"BluetoothDevice(address={self.address!r}, name={self.name!r})"

    @property
    def connection(self) -> Optional[DeviceConnection]:
        return self._connection

    @property
    def connection_type(self) -> Optional[str]:
        return self._connection.connection_type if self._connection else None

    def is_connected(self) -> bool:
        """Kiểm tra trạng thái kết nối"""
        return self._connection is not None and self._connection.is_open

    def connect(self, connection_type: str = CONNECTION_TYPE_BINARY,
                delimiter: str = DEFAULT_DELIMITER,
                charset: str = DEFAULT_CHARSET,
                port: Optional[int] = None) -> bool:
        """
        Kết nối đến thiết bị

        Args:
            connection_type: 'binary' hoặc 'delimited'
            delimiter: Ký tự phân tách message (chế độ delimited)
            charset: Bảng mã dùng để encode/decode dữ liệu text
            port: RFCOMM channel (None: tự động tìm qua SDP)

        Returns:
            True nếu kết nối thành công

        Raises:
            ConnectionFailedError: không mở được kết nối
        """
        if connection_type not in CONNECTION_TYPES:
            raise ValueError(f"Unsupported connection type: {connection_type}")
        if self.is_connected():
            return True
        if self.manager is None:
            raise BluetoothUnavailableError(f"Device {self.address} has no Bluetooth manager")

        sock = self.manager.open_socket(self.address, port)
        try:
            connection = DeviceConnection(
                self.address, sock,
                connection_type=connection_type,
                delimiter=delimiter,
                charset=charset,
                on_lost=self.manager.handle_connection_lost,
            )
        except Exception:
            sock.close()
            raise

        self._connection = connection
        connection.start()
        self.manager.register_connected_device(self)
        return True

    def disconnect(self) -> bool:
        """Ngắt kết nối, trả về False nếu thiết bị chưa kết nối"""
        connection = self._connection
        if connection is None:
            return False
        self._connection = None
        was_open = connection.is_open
        try:
            connection.close()
        finally:
            if self.manager is not None:
                self.manager.unregister_connected_device(self.address)
        return was_open

    def _require_connection(self) -> DeviceConnection:
        if not self.is_connected():
            raise NotConnectedError(self.address)
        return self._connection  # type: ignore[return-value]

    def read(self) -> Optional[str]:
        """Đọc một lần dữ liệu đang có (None nếu không có gì)"""
        return self._require_connection().read()

    def available(self) -> int:
        return self._require_connection().available()

    def clear(self):
        self._require_connection().clear()

    def write(self, data: Union[str, bytes]) -> bool:
        """Gửi dữ liệu tới thiết bị"""
        self._require_connection().write(data)
        return True

    def on_data_received(self, listener: DataListener) -> Subscription:
        """Đăng ký nhận sự kiện dữ liệu, trả về Subscription để hủy"""
        return self._require_connection().add_listener(listener)


class BluetoothManager(QObject):
    """Class quản lý adapter, quét thiết bị và mở socket"""

    # Signals để giao tiếp với GUI
    device_found = pyqtSignal(object)  # BluetoothDevice
    connection_established = pyqtSignal(str)  # device address
    connection_lost = pyqtSignal(str)  # device address
    error_occurred = pyqtSignal(str)

    def __init__(self):
        super().__init__()
        self.is_scanning = False
        self._connected: Dict[str, BluetoothDevice] = {}
        self._lock = threading.Lock()
        # Không có PyBluez thì dùng backend cổng COM (pyserial)
        self._pybluez_available = bluetooth is not None
        self._use_serial_backend = not self._pybluez_available

    @property
    def backend_name(self) -> str:
        if not self._use_serial_backend:
            return "pybluez"
        if serial is not None:
            return "serial"
        return "none"

    # === Adapter ===

    def is_bluetooth_enabled(self) -> bool:
        """Kiểm tra adapter Bluetooth có đang bật không"""
        if self._use_serial_backend:
            # Radio do hệ điều hành quản lý, cổng COM SPP có sẵn là đủ
            return serial is not None

        try:
            result = _run_btctl(["show"])
        except FileNotFoundError:
            # Không có bluetoothctl (macOS...), PyBluez import được thì coi như bật
            return True
        except subprocess.TimeoutExpired as e:
            raise BluetoothError(f"bluetoothctl timed out: {e}") from e

        for line in result.stdout.splitlines():
            if "Powered:" in line:
                return "yes" in line.lower()
        return False

    def enable(self):
        """Bật adapter Bluetooth"""
        if self._use_serial_backend:
            print("Backend serial: adapter do hệ điều hành quản lý, bỏ qua")
            return

        print("Đang bật adapter Bluetooth...")
        try:
            result = _run_btctl(["power", "on"])
        except FileNotFoundError as e:
            raise BluetoothUnavailableError("bluetoothctl is not installed") from e
        except subprocess.TimeoutExpired as e:
            raise BluetoothError(f"bluetoothctl timed out: {e}") from e

        output = f"{result.stdout}\n{result.stderr}"
        if result.returncode != 0 or "Failed" in output or "No default controller" in output:
            raise BluetoothError(
                result.stderr.strip() or result.stdout.strip()
                or f"bluetoothctl exited with code {result.returncode}"
            )
        print("Đã bật adapter Bluetooth")

    # === Discovery ===

    def start_discovery(self, duration: int = DEFAULT_SCAN_DURATION) -> List[BluetoothDevice]:
        """
        Quét các thiết bị Bluetooth trong vùng

        Args:
            duration: Thời gian quét (giây)

        Returns:
            List các thiết bị tìm được
        """
        devices = []
        self.is_scanning = True

        try:
            if not self._use_serial_backend:
                print(f"Đang quét thiết bị Bluetooth trong {duration} giây...")
                nearby_devices = bluetooth.discover_devices(  # type: ignore[attr-defined]
                    duration=duration,
                    lookup_names=True,
                    flush_cache=True
                )
                for addr, name in nearby_devices:
                    device = BluetoothDevice(addr, name, manager=self)
                    devices.append(device)
                    self.device_found.emit(device)
            else:
                # Không có PyBluez: duyệt cổng COM/rfcomm để tìm SPP
                if list_ports is None:
                    raise BluetoothUnavailableError("Neither PyBluez nor PySerial is available")
                print("Đang liệt kê cổng COM có thể là Bluetooth SPP...")
                for port in list_ports.comports():
                    description = port.description or "Serial Port"
                    # Windows thường hiển thị "Standard Serial over Bluetooth link"
                    is_bt = "rfcomm" in port.device.lower() or any(
                        s in description.lower() for s in ["bluetooth", "spp"]
                    )
                    if is_bt:
                        device = BluetoothDevice(port.device, description, manager=self)
                        devices.append(device)
                        self.device_found.emit(device)
        finally:
            self.is_scanning = False

        print(f"Tìm thấy {len(devices)} thiết bị")
        return devices

    def find_services(self, device_address: str) -> List[Dict]:
        """
        Tìm các dịch vụ RFCOMM trên thiết bị

        Args:
            device_address: Địa chỉ MAC của thiết bị

        Returns:
            List các dịch vụ tìm được
        """
        # Trên backend serial/COM không có khái niệm dịch vụ
        if self._use_serial_backend:
            return []

        try:
            print(f"Đang tìm dịch vụ trên thiết bị {device_address}...")
            services = bluetooth.find_service(  # type: ignore[attr-defined]
                uuid=SPP_UUID,
                address=device_address
            )
            if not services:
                services = bluetooth.find_service(address=device_address)  # type: ignore[attr-defined]
            print(f"Tìm thấy {len(services)} dịch vụ")
            return services
        except Exception as e:
            self.error_occurred.emit(f"Service lookup failed: {e}")
            return []

    # === Connection ===

    def open_socket(self, device_address: str, port: Optional[int] = None) -> object:
        """
        Mở socket tới thiết bị (RFCOMM qua PyBluez hoặc cổng COM qua pyserial)

        Raises:
            ConnectionFailedError: không kết nối được
            BluetoothUnavailableError: không có backend phù hợp
        """
        is_mac_like = bool(MAC_ADDRESS_RE.match(device_address))
        use_pybluez = not self._use_serial_backend and is_mac_like

        try:
            if use_pybluez:
                if not port:
                    services = self.find_services(device_address)
                    if not services:
                        raise ConnectionFailedError(device_address, "no RFCOMM service found")
                    port = services[0].get("port") or DEFAULT_RFCOMM_PORT

                print(f"Đang kết nối đến {device_address} trên port {port} (PyBluez)...")
                sock = bluetooth.BluetoothSocket(bluetooth.RFCOMM)  # type: ignore[attr-defined]
                try:
                    sock.connect((device_address, port))
                except Exception:
                    sock.close()
                    raise
                return sock

            if serial is None:
                raise BluetoothUnavailableError("Neither PyBluez nor PySerial is available")
            print(f"Đang kết nối đến {device_address} (Serial/COM, {DEFAULT_SERIAL_BAUDRATE} bps)...")
            return SerialSocketAdapter(device_address, baudrate=DEFAULT_SERIAL_BAUDRATE)
        except BluetoothError:
            raise
        except Exception as e:
            raise ConnectionFailedError(device_address, e) from e

    def register_connected_device(self, device: BluetoothDevice):
        with self._lock:
            self._connected[device.address] = device
        print(f"Kết nối thành công: {device}")
        self.connection_established.emit(device.address)

    def unregister_connected_device(self, device_address: str):
        with self._lock:
            self._connected.pop(device_address, None)
        print(f"Đã ngắt kết nối {device_address}")

    def handle_connection_lost(self, device_address: str, reason: str):
        """Gọi từ thread nhận dữ liệu khi kết nối bị mất"""
        with self._lock:
            self._connected.pop(device_address, None)
        self.error_occurred.emit(f"Connection to {device_address} lost: {reason}")
        self.connection_lost.emit(device_address)

    def get_connected_devices(self) -> List[BluetoothDevice]:
        with self._lock:
            return list(self._connected.values())

    def is_connected(self) -> bool:
        """Có thiết bị nào đang kết nối không"""
        with self._lock:
            return bool(self._connected)

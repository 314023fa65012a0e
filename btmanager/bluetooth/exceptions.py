"""
Các exception của tầng Bluetooth
"""
from .constants import CONNECTION_FAILED_MARKER


class BluetoothError(Exception):
    """Lỗi chung khi làm việc với Bluetooth"""


class BluetoothUnavailableError(BluetoothError):
    """Không có backend hoặc adapter Bluetooth khả dụng"""


class ConnectionFailedError(BluetoothError):
    """Không mở được kết nối RFCOMM/SPP (bị từ chối, ghép nối thất bại...)"""

    def __init__(self, address: str, reason: object = ""):
        self.address = address
        self.reason = reason
        super().__init__(f"{CONNECTION_FAILED_MARKER}: could not connect to {address}: {reason}")


class NotConnectedError(BluetoothError):
    """Thao tác I/O trên thiết bị chưa kết nối"""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Device {address} is not connected")

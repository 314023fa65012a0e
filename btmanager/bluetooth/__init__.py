"""
Bluetooth Module - Quét, kết nối và giao tiếp Bluetooth Classic
"""
from .bluetooth_manager import BluetoothManager, BluetoothDevice, SerialSocketAdapter
from .connection import DeviceConnection, Subscription
from .exceptions import (
    BluetoothError,
    BluetoothUnavailableError,
    ConnectionFailedError,
    NotConnectedError,
)

__all__ = [
    'BluetoothManager',
    'BluetoothDevice',
    'SerialSocketAdapter',
    'DeviceConnection',
    'Subscription',
    'BluetoothError',
    'BluetoothUnavailableError',
    'ConnectionFailedError',
    'NotConnectedError',
]

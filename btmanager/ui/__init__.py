"""
UI Module - Giao diện người dùng PyQt6
"""
from .main_window import HomeWindow
from .communication_panel import CommunicationPanel, LogWidget, ReceivedDataWidget, DataSendWidget
from .device_list_widget import DeviceDiscoveryDialog

__all__ = [
    'HomeWindow',
    'CommunicationPanel',
    'LogWidget',
    'ReceivedDataWidget',
    'DataSendWidget',
    'DeviceDiscoveryDialog',
]

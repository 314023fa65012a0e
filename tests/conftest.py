"""Pytest configuration and shared fixtures."""

import os
import queue
import time

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest

from btmanager.bluetooth import BluetoothDevice, BluetoothManager
from btmanager.core import AppSettings, HomeController


def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    """Poll predicate until it is true or timeout expires (no Qt event loop)."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class FakeSocket:
    """In-memory stand-in for an RFCOMM socket."""

    def __init__(self):
        self.incoming: "queue.Queue" = queue.Queue()
        self.sent: list = []
        self.closed = False
        self.timeout = None

    def settimeout(self, timeout):
        self.timeout = timeout

    def recv(self, num_bytes):
        if self.closed:
            raise OSError("socket closed")
        try:
            item = self.incoming.get(timeout=self.timeout or 0.05)
        except queue.Empty:
            raise TimeoutError("timed out")
        if isinstance(item, Exception):
            raise item
        return item

    def send(self, data):
        self.sent.append(data)
        return len(data)

    def close(self):
        self.closed = True

    def feed(self, data):
        self.incoming.put(data)


class FakeManager(BluetoothManager):
    """BluetoothManager with canned adapter, discovery and sockets."""

    def __init__(self, devices=None, enabled=True):
        super().__init__()
        self.enabled = enabled
        self.enable_calls = 0
        self.enable_error = None
        self.discovery_calls = 0
        self.discovery_error = None
        self.discovered = devices or []
        self.connect_error = None
        self.sockets = {}

    def is_bluetooth_enabled(self):
        return self.enabled

    def enable(self):
        self.enable_calls += 1
        if self.enable_error:
            raise self.enable_error
        self.enabled = True

    def start_discovery(self, duration=8):
        self.discovery_calls += 1
        if self.discovery_error:
            raise self.discovery_error
        return list(self.discovered)

    def open_socket(self, device_address, port=None):
        if self.connect_error:
            raise self.connect_error
        sock = FakeSocket()
        self.sockets[device_address] = sock
        return sock

    def make_device(self, address, name="Sensor"):
        return BluetoothDevice(address, name, manager=self)


@pytest.fixture
def fake_manager(qapp):
    manager = FakeManager()
    manager.discovered = [
        manager.make_device("00:11:22:33:44:55", "HC-05"),
        manager.make_device("66:77:88:99:AA:BB", "Scale"),
    ]
    yield manager
    for device in manager.get_connected_devices():
        device.disconnect()


@pytest.fixture
def settings():
    return AppSettings(scan_duration=1)


@pytest.fixture
def controller(fake_manager, settings):
    ctrl = HomeController(fake_manager, settings=settings, threaded=False)
    ctrl.alerts = []
    ctrl.alert_requested.connect(lambda title, message: ctrl.alerts.append((title, message)))
    yield ctrl
    ctrl.shutdown(disconnect=True)

"""Unit tests for BluetoothManager and BluetoothDevice without real Bluetooth hardware."""

import subprocess
from types import SimpleNamespace

import pytest

from btmanager.bluetooth import bluetooth_manager as bm
from btmanager.bluetooth import (
    BluetoothDevice,
    BluetoothError,
    BluetoothManager,
    BluetoothUnavailableError,
    ConnectionFailedError,
    NotConnectedError,
)
from btmanager.bluetooth.constants import CONNECTION_FAILED_MARKER, SPP_UUID, UNKNOWN_DEVICE_NAME

from conftest import FakeManager

ADDRESS = "00:11:22:33:44:55"


class FakeRfcommSocket:
    def __init__(self, connect_error=None):
        self.connect_error = connect_error
        self.connected_to = None
        self.closed = False

    def connect(self, address_port):
        if self.connect_error:
            raise self.connect_error
        self.connected_to = address_port

    def close(self):
        self.closed = True


class FakePyBluez:
    """Subset of the PyBluez module API used by BluetoothManager."""
    RFCOMM = 3

    def __init__(self):
        self.discovered = []
        self.spp_services = []
        self.all_services = []
        self.connect_error = None
        self.sockets = []
        self.discover_kwargs = None

    def discover_devices(self, **kwargs):
        self.discover_kwargs = kwargs
        return list(self.discovered)

    def find_service(self, uuid=None, address=None):
        return self.spp_services if uuid else self.all_services

    def BluetoothSocket(self, proto):
        sock = FakeRfcommSocket(self.connect_error)
        self.sockets.append(sock)
        return sock


def completed(stdout="", stderr="", returncode=0):
    return subprocess.CompletedProcess(["bluetoothctl"], returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def pybluez(monkeypatch):
    fake = FakePyBluez()
    monkeypatch.setattr(bm, "bluetooth", fake)
    return fake


@pytest.fixture
def manager(qapp, pybluez):
    mgr = BluetoothManager()
    mgr._use_serial_backend = False
    return mgr


class TestBluetoothDevice:

    def test_str_and_name_fallback(self):
        assert str(BluetoothDevice(ADDRESS, "HC-05")) == f"HC-05 ({ADDRESS})"
        assert BluetoothDevice(ADDRESS, None).name == UNKNOWN_DEVICE_NAME
        assert BluetoothDevice(ADDRESS, "").name == UNKNOWN_DEVICE_NAME

    def test_connect_registers_with_manager(self, qapp):
        manager = FakeManager()
        established = []
        manager.connection_established.connect(established.append)
        device = manager.make_device(ADDRESS)

        assert device.connect() is True

        assert device.is_connected()
        assert device.connection_type == "binary"
        assert manager.is_connected()
        assert established == [ADDRESS]
        device.disconnect()

    def test_connect_twice_keeps_existing_socket(self, qapp):
        manager = FakeManager()
        device = manager.make_device(ADDRESS)
        device.connect()
        first_socket = manager.sockets[ADDRESS]

        assert device.connect() is True

        assert manager.sockets[ADDRESS] is first_socket
        device.disconnect()

    def test_unknown_connection_type(self, qapp):
        manager = FakeManager()
        device = manager.make_device(ADDRESS)

        with pytest.raises(ValueError):
            device.connect(connection_type="lines")
        assert manager.sockets == {}

    def test_connect_without_manager(self):
        with pytest.raises(BluetoothUnavailableError):
            BluetoothDevice(ADDRESS).connect()

    def test_disconnect_closes_and_unregisters(self, qapp):
        manager = FakeManager()
        device = manager.make_device(ADDRESS)
        device.connect()
        sock = manager.sockets[ADDRESS]

        assert device.disconnect() is True

        assert sock.closed
        assert not device.is_connected()
        assert not manager.is_connected()
        assert device.disconnect() is False

    def test_disconnect_unregisters_when_close_fails(self, qapp):
        manager = FakeManager()
        device = manager.make_device(ADDRESS)
        device.connect()

        def failing_close():
            raise OSError("close failed")

        manager.sockets[ADDRESS].close = failing_close

        with pytest.raises(OSError):
            device.disconnect()

        assert not device.is_connected()
        assert manager.get_connected_devices() == []

    def test_io_requires_connection(self):
        device = BluetoothDevice(ADDRESS)

        with pytest.raises(NotConnectedError):
            device.read()
        with pytest.raises(NotConnectedError):
            device.write("hi")
        with pytest.raises(NotConnectedError):
            device.on_data_received(lambda event: None)

    def test_write_goes_to_socket(self, qapp):
        manager = FakeManager()
        device = manager.make_device(ADDRESS)
        device.connect()

        assert device.write("PING\n") is True

        assert manager.sockets[ADDRESS].sent == [b"PING\n"]
        device.disconnect()

    def test_read_error_emits_connection_lost(self, qtbot):
        manager = FakeManager()
        device = manager.make_device(ADDRESS)
        device.connect()

        with qtbot.waitSignal(manager.connection_lost, timeout=2000) as blocker:
            manager.sockets[ADDRESS].feed(OSError("Connection reset by peer"))

        assert blocker.args == [ADDRESS]
        assert not device.is_connected()
        assert not manager.is_connected()


class TestAdapter:

    def test_powered_yes(self, manager, monkeypatch):
        monkeypatch.setattr(bm, "_run_btctl", lambda args, timeout=10: completed(
            "Controller AA:BB:CC:DD:EE:FF (public)\n\tPowered: yes\n"))
        assert manager.is_bluetooth_enabled() is True

    def test_powered_no(self, manager, monkeypatch):
        monkeypatch.setattr(bm, "_run_btctl", lambda args, timeout=10: completed(
            "Controller AA:BB:CC:DD:EE:FF (public)\n\tPowered: no\n"))
        assert manager.is_bluetooth_enabled() is False

    def test_no_controller(self, manager, monkeypatch):
        monkeypatch.setattr(bm, "_run_btctl", lambda args, timeout=10: completed(
            "No default controller available\n"))
        assert manager.is_bluetooth_enabled() is False

    def test_missing_bluetoothctl_assumes_enabled(self, manager, monkeypatch):
        def missing(args, timeout=10):
            raise FileNotFoundError("bluetoothctl")
        monkeypatch.setattr(bm, "_run_btctl", missing)
        assert manager.is_bluetooth_enabled() is True

    def test_enable_powers_on(self, manager, monkeypatch):
        calls = []

        def run(args, timeout=10):
            calls.append(args)
            return completed("Changing power on succeeded\n")
        monkeypatch.setattr(bm, "_run_btctl", run)

        manager.enable()

        assert calls == [["power", "on"]]

    def test_enable_failure(self, manager, monkeypatch):
        monkeypatch.setattr(bm, "_run_btctl", lambda args, timeout=10: completed(
            "Failed to set power on: org.bluez.Error.Blocked\n", returncode=1))
        with pytest.raises(BluetoothError):
            manager.enable()

    def test_enable_without_bluetoothctl(self, manager, monkeypatch):
        def missing(args, timeout=10):
            raise FileNotFoundError("bluetoothctl")
        monkeypatch.setattr(bm, "_run_btctl", missing)
        with pytest.raises(BluetoothUnavailableError):
            manager.enable()

    def test_serial_backend_skips_bluetoothctl(self, qapp, monkeypatch):
        def unexpected(args, timeout=10):
            raise AssertionError("bluetoothctl must not be called")
        monkeypatch.setattr(bm, "_run_btctl", unexpected)
        mgr = BluetoothManager()
        mgr._use_serial_backend = True

        mgr.enable()
        assert mgr.is_bluetooth_enabled() is True
        assert mgr.backend_name == "serial"


class TestDiscovery:

    def test_pybluez_discovery(self, manager, pybluez):
        pybluez.discovered = [(ADDRESS, "HC-05"), ("66:77:88:99:AA:BB", None)]
        found = []
        manager.device_found.connect(found.append)

        devices = manager.start_discovery(duration=3)

        assert [d.address for d in devices] == [ADDRESS, "66:77:88:99:AA:BB"]
        assert [d.name for d in devices] == ["HC-05", UNKNOWN_DEVICE_NAME]
        assert all(d.manager is manager for d in devices)
        assert found == devices
        assert pybluez.discover_kwargs == {"duration": 3, "lookup_names": True, "flush_cache": True}
        assert manager.is_scanning is False

    def test_discovery_error_propagates(self, manager, pybluez, monkeypatch):
        def broken(**kwargs):
            raise OSError("No such device")
        monkeypatch.setattr(pybluez, "discover_devices", broken)

        with pytest.raises(OSError):
            manager.start_discovery()
        assert manager.is_scanning is False

    def test_serial_port_discovery(self, qapp, monkeypatch):
        ports = [
            SimpleNamespace(device="COM5", description="Standard Serial over Bluetooth link (COM5)"),
            SimpleNamespace(device="COM3", description="USB Serial Device (COM3)"),
            SimpleNamespace(device="/dev/rfcomm0", description="n/a"),
        ]
        monkeypatch.setattr(bm, "list_ports", SimpleNamespace(comports=lambda: ports))
        mgr = BluetoothManager()
        mgr._use_serial_backend = True

        devices = mgr.start_discovery()

        assert [d.address for d in devices] == ["COM5", "/dev/rfcomm0"]


class TestOpenSocket:

    def test_port_resolved_from_spp_service(self, manager, pybluez):
        pybluez.spp_services = [{"port": 4, "name": "SPP"}]

        sock = manager.open_socket(ADDRESS)

        assert sock.connected_to == (ADDRESS, 4)

    def test_explicit_port(self, manager, pybluez):
        sock = manager.open_socket(ADDRESS, port=2)
        assert sock.connected_to == (ADDRESS, 2)

    def test_no_service_found(self, manager, pybluez):
        with pytest.raises(ConnectionFailedError):
            manager.open_socket(ADDRESS)

    def test_refused_connection_wrapped(self, manager, pybluez):
        pybluez.connect_error = OSError(111, "Connection refused")

        with pytest.raises(ConnectionFailedError) as excinfo:
            manager.open_socket(ADDRESS, port=1)

        assert CONNECTION_FAILED_MARKER in str(excinfo.value)
        assert excinfo.value.address == ADDRESS
        assert pybluez.sockets[0].closed

    def test_spp_uuid_used_for_lookup(self, manager, pybluez, monkeypatch):
        seen = []

        def find_service(uuid=None, address=None):
            seen.append((uuid, address))
            return [{"port": 1}]
        monkeypatch.setattr(pybluez, "find_service", find_service)

        manager.open_socket(ADDRESS)

        assert seen == [(SPP_UUID, ADDRESS)]


class TestSerialSocketAdapter:

    @pytest.fixture
    def adapter(self):
        adapter = bm.SerialSocketAdapter.__new__(bm.SerialSocketAdapter)
        adapter._serial = SimpleNamespace(read=lambda num_bytes: b"", timeout=None)
        return adapter

    def test_empty_read_is_a_timeout(self, adapter):
        with pytest.raises(TimeoutError, match="timed out"):
            adapter.recv(1024)

    def test_read_returns_data(self, adapter):
        adapter._serial.read = lambda num_bytes: b"OK"

        assert adapter.recv(1024) == b"OK"

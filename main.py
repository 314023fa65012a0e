"""
Main Entry Point - Điểm vào chính cho ứng dụng Bluetooth Device Manager
Hỗ trợ cả giao diện GUI và chế độ quét trên command line
"""
import sys
import os
import argparse
import codecs

# Thêm thư mục hiện tại vào Python path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from btmanager import __version__


def build_settings(args):
    """Tạo AppSettings từ tham số command line"""
    from btmanager.core import AppSettings

    # Cho phép nhập delimiter dạng escape, ví dụ '\r\n'
    delimiter = args.delimiter
    if "\\" in delimiter:
        delimiter = codecs.decode(delimiter, "unicode_escape")
    return AppSettings(
        scan_duration=args.scan_duration,
        connection_type=args.connection_type,
        delimiter=delimiter,
    )


def run_bluetooth_gui(settings):
    """Chạy giao diện Bluetooth GUI"""
    try:
        from bluetooth_gui import main as gui_main
    except ImportError as e:
        print(f"GUI import error: {e}")
        print("Make sure PyQt6 is installed: pip install PyQt6 pyserial (pybluez on Linux)")
        sys.exit(1)

    print("Starting Bluetooth GUI...")
    gui_main(settings)


def run_scan_mode(settings) -> int:
    """Quét thiết bị và in danh sách ra console"""
    from btmanager.bluetooth import BluetoothManager, BluetoothError

    manager = BluetoothManager()
    print(f"Backend: {manager.backend_name}")

    try:
        if not manager.is_bluetooth_enabled():
            answer = input("Bluetooth is off. Would you like to enable it? [y/N] ")
            if answer.strip().lower() not in ("y", "yes"):
                print("Bluetooth is disabled. Aborting.")
                return 1
            manager.enable()

        devices = manager.start_discovery(settings.scan_duration)
    except BluetoothError as e:
        print(f"Bluetooth error: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nScan interrupted (Ctrl+C).")
        return 1

    if not devices:
        print("No devices found")
        return 0

    print(f"\n{'NAME':<32} ADDRESS")
    for device in devices:
        print(f"{device.name:<32} {device.address}")
    return 0


def main():
    """Main function với argument parsing"""
    from btmanager.bluetooth.constants import CONNECTION_TYPES, DEFAULT_SCAN_DURATION

    parser = argparse.ArgumentParser(
        description="Bluetooth Device Manager - Discover, connect and read Bluetooth Classic devices",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Modes:
  gui     : Graphical interface (default)
  scan    : Discover devices and print them to the console

Examples:
  python main.py                                  # GUI mode
  python main.py --mode scan --scan-duration 5    # Console scan
  python main.py --connection-type delimited --delimiter '\\r\\n'
        """
    )

    parser.add_argument(
        '--mode', '-m',
        choices=['gui', 'scan'],
        default='gui',
        help='Run mode: gui or scan'
    )
    parser.add_argument(
        '--scan-duration', '-d',
        type=int,
        default=DEFAULT_SCAN_DURATION,
        help='Discovery duration in seconds'
    )
    parser.add_argument(
        '--connection-type', '-c',
        choices=list(CONNECTION_TYPES),
        default='binary',
        help='Connection mode: raw bytes (binary) or delimiter-framed text (delimited)'
    )
    parser.add_argument(
        '--delimiter',
        default='\\n',
        help='Message delimiter for delimited connections'
    )
    parser.add_argument(
        '--version', '-v',
        action='version',
        version=f'Bluetooth Device Manager v{__version__}'
    )

    args = parser.parse_args()

    try:
        settings = build_settings(args)
    except ValueError as e:
        parser.error(str(e))

    print("=" * 50)
    print("BLUETOOTH DEVICE MANAGER")
    print("=" * 50)

    if args.mode == 'gui':
        print("Mode: Bluetooth GUI Interface")
        run_bluetooth_gui(settings)
    elif args.mode == 'scan':
        print("Mode: Console Scan")
        sys.exit(run_scan_mode(settings))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()

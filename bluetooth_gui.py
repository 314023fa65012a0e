"""
Bluetooth GUI - Entry point cho giao diện người dùng PyQt6
"""
import sys
from typing import Optional
from PyQt6.QtWidgets import QApplication
from btmanager.core import AppSettings
from btmanager.ui import HomeWindow


def main(settings: Optional[AppSettings] = None):
    """Hàm main để chạy ứng dụng"""
    app = QApplication(sys.argv)

    # Thiết lập style
    app.setStyle('Fusion')

    # Tạo và hiển thị window
    window = HomeWindow(settings=settings)
    window.show()

    # Chạy event loop
    sys.exit(app.exec())


if __name__ == "__main__":
    main()

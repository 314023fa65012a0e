"""
Settings - Cấu hình chạy ứng dụng
"""
from dataclasses import dataclass

from ..bluetooth.constants import (
    CONNECTION_TYPE_BINARY,
    CONNECTION_TYPES,
    DEFAULT_CHARSET,
    DEFAULT_DELIMITER,
    DEFAULT_SCAN_DURATION,
)

CLOCK_INTERVAL_MS = 1000


@dataclass
class AppSettings:
    """Tham số cho controller, lấy từ command line"""
    scan_duration: int = DEFAULT_SCAN_DURATION
    connection_type: str = CONNECTION_TYPE_BINARY
    delimiter: str = DEFAULT_DELIMITER
    charset: str = DEFAULT_CHARSET
    clock_interval_ms: int = CLOCK_INTERVAL_MS

    def __post_init__(self):
        if self.connection_type not in CONNECTION_TYPES:
            raise ValueError(f"Unsupported connection type: {self.connection_type}")
        if self.scan_duration <= 0:
            raise ValueError("scan_duration must be positive")
        if self.clock_interval_ms <= 0:
            raise ValueError("clock_interval_ms must be positive")

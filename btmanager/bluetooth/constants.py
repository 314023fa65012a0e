"""
Các hằng số dùng chung cho tầng giao tiếp Bluetooth Classic (RFCOMM/SPP).
"""

# --- Dịch vụ ---
# Serial Port Profile
SPP_UUID = "00001101-0000-1000-8000-00805f9b34fb"
DEFAULT_RFCOMM_PORT = 1

# --- Backend serial (Windows, cổng COM ảo của SPP) ---
DEFAULT_SERIAL_BAUDRATE = 115200
SERIAL_BUFFER_SIZE = 8192

# --- Quét thiết bị ---
DEFAULT_SCAN_DURATION = 8  # giây
UNKNOWN_DEVICE_NAME = "Unknown Device"

# --- Nhận dữ liệu ---
RECV_CHUNK_SIZE = 1024
RECV_TIMEOUT = 0.2  # giây
RECEIVE_THREAD_JOIN_TIMEOUT = 2.0

# --- Kiểu kết nối ---
CONNECTION_TYPE_BINARY = "binary"
CONNECTION_TYPE_DELIMITED = "delimited"
CONNECTION_TYPES = (CONNECTION_TYPE_BINARY, CONNECTION_TYPE_DELIMITED)
DEFAULT_DELIMITER = "\n"
DEFAULT_CHARSET = "utf-8"

# --- Sự kiện ---
EVENT_DATA_RECEIVED = "DATA_RECEIVED"

# Chuỗi nhận diện lỗi kết nối bị từ chối / ghép nối thất bại
CONNECTION_FAILED_MARKER = "ConnectionFailedException"

"""
Device Connection - Phiên kết nối RFCOMM/SPP với một thiết bị
Nhận dữ liệu trong thread riêng và phân phối tới các listener đã đăng ký
"""
import base64
import threading
from collections import deque
from datetime import datetime
from typing import Callable, Deque, Dict, List, Optional, Union

from .constants import (
    CONNECTION_TYPE_BINARY,
    CONNECTION_TYPES,
    DEFAULT_CHARSET,
    DEFAULT_DELIMITER,
    EVENT_DATA_RECEIVED,
    RECEIVE_THREAD_JOIN_TIMEOUT,
    RECV_CHUNK_SIZE,
    RECV_TIMEOUT,
)

DataListener = Callable[[Dict[str, str]], None]


class Subscription:
    """Handle trả về khi đăng ký nhận dữ liệu, gọi remove() để hủy đăng ký"""

    def __init__(self, unsubscribe: Callable[[], None]):
        self._unsubscribe = unsubscribe
        self._removed = False

    @property
    def removed(self) -> bool:
        return self._removed

    def remove(self):
        """Hủy đăng ký listener (gọi nhiều lần không lỗi)"""
        if self._removed:
            return
        self._removed = True
        self._unsubscribe()


class DeviceConnection:
    """
    Một kết nối đang mở tới thiết bị.

    Chế độ binary: mỗi chunk nhận được là một sự kiện, dữ liệu được mã hóa base64.
    Chế độ delimited: dữ liệu được gom lại và tách thành từng message theo delimiter.
    Khi chưa có listener nào, dữ liệu được giữ lại trong buffer để read().
    """

    def __init__(self, address: str, sock: object,
                 connection_type: str = CONNECTION_TYPE_BINARY,
                 delimiter: str = DEFAULT_DELIMITER,
                 charset: str = DEFAULT_CHARSET,
                 on_lost: Optional[Callable[[str, str], None]] = None):
        if connection_type not in CONNECTION_TYPES:
            raise ValueError(f"Unsupported connection type: {connection_type}")
        if connection_type != CONNECTION_TYPE_BINARY and not delimiter:
            raise ValueError("Delimited connections require a non-empty delimiter")

        self.address = address
        self.socket = sock
        self.connection_type = connection_type
        self.delimiter = delimiter
        self.charset = charset
        self._on_lost = on_lost

        self._lock = threading.Lock()
        self._listeners: List[DataListener] = []
        self._binary_buffer = bytearray()
        self._pending = bytearray()
        self._messages: Deque[str] = deque()

        self.receive_thread: Optional[threading.Thread] = None
        self.stop_receive = False
        self._closed = False

    @property
    def is_binary(self) -> bool:
        return self.connection_type == CONNECTION_TYPE_BINARY

    @property
    def is_open(self) -> bool:
        return not self._closed

    def start(self):
        """Bắt đầu thread nhận dữ liệu"""
        self.stop_receive = False
        self.receive_thread = threading.Thread(target=self._receive_data_worker)
        self.receive_thread.daemon = True
        self.receive_thread.start()

    def _receive_data_worker(self):
        """Worker thread để nhận dữ liệu liên tục"""
        while not self.stop_receive:
            try:
                # Set timeout để có thể kiểm tra stop_receive
                if hasattr(self.socket, "settimeout"):
                    self.socket.settimeout(RECV_TIMEOUT)
                data = self.socket.recv(RECV_CHUNK_SIZE)
            except Exception as e:
                if self.stop_receive:
                    break
                # Timeout của socket (SerialSocketAdapter cũng báo "timed out")
                if "timed out" in str(e).lower():
                    continue
                print(f"Lỗi nhận dữ liệu từ {self.address}: {e}")
                self._handle_lost(str(e))
                break

            if not data:
                # recv() trả về b'': thiết bị đã đóng kết nối
                if not self.stop_receive:
                    print(f"Thiết bị {self.address} đã đóng kết nối")
                    self._handle_lost("connection closed by peer")
                break

            self._dispatch(bytes(data))

        print(f"Thread nhận dữ liệu ({self.address}) đã dừng")

    def _split_messages(self, data: bytes) -> List[str]:
        self._pending.extend(data)
        separator = self.delimiter.encode(self.charset)
        messages = []
        while True:
            idx = self._pending.find(separator)
            if idx == -1:
                break
            raw = bytes(self._pending[:idx])
            del self._pending[:idx + len(separator)]
            messages.append(raw.decode(self.charset, errors="replace"))
        return messages

    def _make_event(self, payload: str) -> Dict[str, str]:
        return {
            "device": self.address,
            "data": payload,
            "timestamp": datetime.now().isoformat(),
            "eventType": EVENT_DATA_RECEIVED,
        }

    def _dispatch(self, data: bytes):
        """Phân phối dữ liệu tới listener, hoặc giữ lại trong buffer nếu chưa có ai nghe"""
        with self._lock:
            if self.is_binary:
                payloads = [base64.b64encode(data).decode("ascii")]
            else:
                payloads = self._split_messages(data)

            listeners = list(self._listeners)
            if not listeners:
                if self.is_binary:
                    self._binary_buffer.extend(data)
                else:
                    self._messages.extend(payloads)
                return

        for payload in payloads:
            event = self._make_event(payload)
            for listener in listeners:
                try:
                    listener(event)
                except Exception as e:
                    print(f"Lỗi trong listener dữ liệu: {e}")

    def add_listener(self, listener: DataListener) -> Subscription:
        """Đăng ký listener nhận sự kiện dữ liệu"""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return Subscription(_unsubscribe)

    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def read(self) -> Optional[str]:
        """
        Đọc dữ liệu đang có trong buffer

        Returns:
            binary: base64 của toàn bộ buffer; delimited: message kế tiếp;
            None nếu không có dữ liệu
        """
        with self._lock:
            if self.is_binary:
                if not self._binary_buffer:
                    return None
                data = bytes(self._binary_buffer)
                self._binary_buffer.clear()
                return base64.b64encode(data).decode("ascii")
            if self._messages:
                return self._messages.popleft()
            return None

    def available(self) -> int:
        """Số byte (binary) hoặc số message (delimited) đang chờ đọc"""
        with self._lock:
            if self.is_binary:
                return len(self._binary_buffer)
            return len(self._messages)

    def clear(self):
        """Xóa dữ liệu đang chờ trong buffer"""
        with self._lock:
            self._binary_buffer.clear()
            self._pending.clear()
            self._messages.clear()

    def write(self, data: Union[str, bytes]) -> int:
        """Gửi dữ liệu tới thiết bị, trả về số byte đã gửi"""
        payload = data.encode(self.charset) if isinstance(data, str) else bytes(data)
        self.socket.send(payload)
        return len(payload)

    def close(self):
        """Dừng thread nhận dữ liệu và đóng socket"""
        if self._closed:
            return
        self._closed = True
        self.stop_receive = True

        if (self.receive_thread and self.receive_thread.is_alive()
                and self.receive_thread is not threading.current_thread()):
            self.receive_thread.join(timeout=RECEIVE_THREAD_JOIN_TIMEOUT)

        try:
            self.socket.close()
        finally:
            with self._lock:
                self._listeners.clear()

    def _handle_lost(self, reason: str):
        """Kết nối bị mất ngoài ý muốn (lỗi đọc từ thread nhận)"""
        if self._closed:
            return
        self._closed = True
        self.stop_receive = True
        try:
            self.socket.close()
        except Exception as e:
            print(f"Lỗi khi đóng socket: {e}")
        with self._lock:
            self._listeners.clear()
        if self._on_lost:
            self._on_lost(self.address, reason)

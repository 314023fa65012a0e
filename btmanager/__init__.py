"""
Bluetooth Device Manager - Quét, kết nối và nhận dữ liệu từ thiết bị Bluetooth Classic
"""
__version__ = "1.0.0"

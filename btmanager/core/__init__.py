"""
Core Module - Trạng thái và logic của màn hình chính
"""
from .home_controller import HomeController, is_connection_rejected
from .settings import AppSettings

__all__ = ['HomeController', 'AppSettings', 'is_connection_rejected']

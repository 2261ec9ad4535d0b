"""API Routes"""

from . import auto_release, disputes, fees, tasks, wallet
from .dependencies import init_services
from .errors import register_exception_handlers

__all__ = [
    "tasks",
    "wallet",
    "fees",
    "disputes",
    "auto_release",
    "init_services",
    "register_exception_handlers",
]

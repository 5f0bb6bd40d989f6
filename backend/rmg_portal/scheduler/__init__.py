"""Background jobs"""
from .auto_close import start_scheduler, stop_scheduler, get_scheduler

__all__ = ["start_scheduler", "stop_scheduler", "get_scheduler"]

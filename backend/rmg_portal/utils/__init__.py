"""Utility modules"""
from .logger import get_logger, setup_logging
from .idgen import generate_id, generate_correlation_id, format_ticket_number
from .time import utc_now, format_iso, parse_iso, parse_date

__all__ = [
    "get_logger",
    "setup_logging",
    "generate_id",
    "generate_correlation_id",
    "format_ticket_number",
    "utc_now",
    "format_iso",
    "parse_iso",
    "parse_date",
]

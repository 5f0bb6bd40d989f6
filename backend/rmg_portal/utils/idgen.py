"""ID Generation Utilities"""
import uuid
from datetime import datetime
from typing import Optional


def generate_id(prefix: Optional[str] = None) -> str:
    """
    Generate a unique ID with optional prefix

    Examples:
        >>> generate_id('NTF')
        'NTF-a1b2c3d4e5f6'
    """
    unique_part = uuid.uuid4().hex[:12]

    if prefix:
        return f"{prefix}-{unique_part}"
    return unique_part


def format_ticket_number(sequence: int, prefix: str = "TKT", width: int = 4) -> str:
    """
    Format a counter value as a ticket number

    Examples:
        >>> format_ticket_number(43)
        'TKT0043'
        >>> format_ticket_number(12345)
        'TKT12345'
    """
    return f"{prefix}{sequence:0{width}d}"


def parse_ticket_number(ticket_number: str, prefix: str = "TKT") -> Optional[int]:
    """Extract the numeric part of a ticket number, None if it does not match"""
    if not ticket_number or not ticket_number.startswith(prefix):
        return None
    digits = ticket_number[len(prefix):]
    if not digits.isdigit():
        return None
    return int(digits)


def generate_config_id() -> str:
    """Generate sub-category config ID"""
    return generate_id("CFG")


def generate_notification_id() -> str:
    """Generate notification ID"""
    return generate_id("NTF")


def generate_timesheet_row_id() -> str:
    """Generate timesheet row ID"""
    return generate_id("TSR")


def generate_leave_id() -> str:
    """Generate leave request ID"""
    return generate_id("LV")


def generate_correlation_id() -> str:
    """Generate a correlation ID for request tracing"""
    timestamp = datetime.utcnow().strftime("%Y%m%d%H%M%S")
    unique_part = uuid.uuid4().hex[:8]
    return f"COR-{timestamp}-{unique_part}"

"""
Display helpers, registered as Jinja filters in app.py.
"""

from decimal import Decimal


def format_currency(amount) -> str:
    """Display an amount with $ and two decimals."""
    if amount is None:
        amount = 0
    return f"${Decimal(str(amount)):,.2f}"


def format_date(value) -> str:
    """e.g. ``Oct 19, 2026``; empty string for missing dates."""
    if value is None:
        return ""
    return f"{value:%b} {value.day}, {value.year}"


def format_datetime(value) -> str:
    if value is None:
        return ""
    return f"{format_date(value)}, {value:%I:%M %p}"


def format_period(value, period="month") -> str:
    """Chart axis label for a bucket start date."""
    if period == "year":
        return f"{value.year}"
    if period == "week":
        return f"{value:%b} {value.day}"
    return f"{value:%b %y}"


def format_percent(value) -> str:
    return f"{float(value or 0):.1f}%"

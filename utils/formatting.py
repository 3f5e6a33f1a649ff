"""Display helpers for amounts and month headings."""
import calendar

CURRENCY_SYMBOL = "Rp"
THOUSANDS_SEPARATOR = "."
NBSP = "\u00a0"


def format_currency(value: float) -> str:
    """
    Formats an amount the way the id-ID rupiah locale does, without fraction digits.

    format_currency(1234567) -> 'Rp\\xa01.234.567'
    format_currency(-1500.6) -> '-Rp\\xa01.501'
    """
    # half-up, matching Intl.NumberFormat rather than round()'s banker's rounding
    rounded = int(abs(value) + 0.5)
    digits = f"{rounded:,}".replace(",", THOUSANDS_SEPARATOR)
    sign = "-" if value < 0 and rounded != 0 else ""
    return f"{sign}{CURRENCY_SYMBOL}{NBSP}{digits}"


def month_label(year: int, month: int) -> str:
    """'March 2024' style heading for a month group."""
    return f"{calendar.month_name[month]} {year}"


def format_amount(value: float) -> str:
    """Plain numeric text for exports: whole numbers lose the trailing '.0'."""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))

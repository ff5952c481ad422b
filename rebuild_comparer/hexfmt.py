"""Hex rendering shared by the formatter, the refresh output and error messages.

Digits are uppercase, the prefix stays a lowercase ``0x``.
"""


def hex_addr(value: int) -> str:
    return f"0x{value:X}"


def signed_hex(value: int) -> str:
    """``+0x10`` / ``-0x8``; zero renders as ``+0x0``."""
    sign = "-" if value < 0 else "+"
    return f"{sign}0x{abs(value):X}"

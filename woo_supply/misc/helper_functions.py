import logging
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging once for command line entry points."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT
    )


def format_number(num: Optional[float], decimals: int = 2) -> str:
    """Format large numbers with B/M/K suffixes, e.g. 1500000 -> '1.50M'."""
    if num is None:
        return "N/A"
    if num >= 1e9:
        return f"{num / 1e9:.{decimals}f}B"
    if num >= 1e6:
        return f"{num / 1e6:.{decimals}f}M"
    if num >= 1e3:
        return f"{num / 1e3:.{decimals}f}K"
    return f"{num:.{decimals}f}"


def format_currency(num: Optional[float]) -> str:
    if num is None:
        return "N/A"
    if num >= 1e9:
        return f"${num / 1e9:.2f}B"
    if num >= 1e6:
        return f"${num / 1e6:.2f}M"
    return f"${num:,.2f}"

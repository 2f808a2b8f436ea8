"""Logging utilities for AgentCity simulations.

Provides color-coded output to distinguish deterministic world operations from
decision-source (LLM) traffic and failures.

Environment switches:
- ``AGENTCITY_NO_COLOR``: plain text output
- ``AGENTCITY_QUIET``: suppress everything except errors
- ``AGENTCITY_DEBUG``: enable ``log_debug`` traces
"""

import os
from enum import Enum


class Color(Enum):
    """ANSI color codes for terminal output."""

    # Colors for operation types
    BLUE = "\033[94m"      # Deterministic operations (resolution, maintenance)
    YELLOW = "\033[93m"    # Decision sources (LLM calls, baselines)
    RED = "\033[91m"       # Errors, fallbacks, aborted ticks
    GREEN = "\033[92m"     # Commits
    CYAN = "\033[96m"      # Info/metadata
    MAGENTA = "\033[95m"   # Debug traces

    # Formatting
    BOLD = "\033[1m"
    RESET = "\033[0m"


def colored(text: str, color: Color, bold: bool = False) -> str:
    """Wrap text in ANSI color codes if colors are enabled.

    Args:
        text: Text to colorize
        color: Color to apply
        bold: Whether to make text bold

    Returns:
        Colorized text if AGENTCITY_NO_COLOR is not set, otherwise plain text
    """
    if os.getenv("AGENTCITY_NO_COLOR"):
        return text

    prefix = color.value
    if bold:
        prefix = Color.BOLD.value + prefix

    return f"{prefix}{text}{Color.RESET.value}"


def _quiet() -> bool:
    return bool(os.getenv("AGENTCITY_QUIET"))


def log_deterministic(message: str) -> None:
    """Log a deterministic operation (blue)."""
    if not _quiet():
        print(colored(message, Color.BLUE))


def log_llm(message: str) -> None:
    """Log a decision-source operation (yellow)."""
    if not _quiet():
        print(colored(message, Color.YELLOW))


def log_error(message: str) -> None:
    """Log an error or fallback (red). Never suppressed."""
    print(colored(message, Color.RED))


def log_success(message: str) -> None:
    """Log a success (green)."""
    if not _quiet():
        print(colored(message, Color.GREEN))


def log_info(message: str) -> None:
    """Log metadata/info (cyan)."""
    if not _quiet():
        print(colored(message, Color.CYAN))


def log_debug(message: str) -> None:
    """Log a debug trace (magenta) when AGENTCITY_DEBUG is set."""
    if os.getenv("AGENTCITY_DEBUG") and not _quiet():
        print(colored(f"  [DEBUG] {message}", Color.MAGENTA))


# Markers for operation types (color-blind accessible)
LOG_TAG_DETERMINISTIC = "[•]"  # Deterministic operation
LOG_TAG_LLM = "[AI]"           # Decision-source call
LOG_TAG_ERROR = "[!]"          # Error/fallback
LOG_TAG_SUCCESS = "[✓]"        # Success
LOG_TAG_INFO = "[i]"           # Information

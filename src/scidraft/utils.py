"""Utility functions for text cleanup, session ids, cost calculation and logging."""

import re
import uuid
from pathlib import Path
from typing import Any, Optional
from loguru import logger
from .config import get_model_pricing


UUID_V4_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-4[0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}$"
)
UUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)

_SPACE_RUNS = re.compile(r" {2,}")
_NEWLINE_RUNS = re.compile(r"\n{3,}")


def ensure_dir(path: Path) -> Path:
    """Ensure directory exists, create if needed."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def normalize_text(text: Any) -> str:
    """
    Normalize free text extracted from manuals and templates.

    Steps, in order: CRLF to LF, stray CR removed, tabs to spaces,
    space runs collapsed, 3+ newlines collapsed to 2, outer whitespace
    trimmed. Applying it twice gives the same result as applying it once.

    Args:
        text: Raw text (anything that is not a string yields "")

    Returns:
        Normalized text
    """
    if not isinstance(text, str):
        return ""

    text = text.replace("\r\n", "\n").replace("\r", "")
    text = text.replace("\t", " ")
    text = _SPACE_RUNS.sub(" ", text)
    text = _NEWLINE_RUNS.sub("\n\n", text)
    return text.strip()


def is_valid_uuid(value: Any, v4_only: bool = True) -> bool:
    """Check whether value is a UUID string (version 4 by default)."""
    if not isinstance(value, str):
        return False
    pattern = UUID_V4_PATTERN if v4_only else UUID_PATTERN
    return bool(pattern.match(value.strip()))


def resolve_session_id(candidate: Optional[str]) -> str:
    """Return the trimmed candidate if it is a UUID v4, otherwise a fresh one."""
    if is_valid_uuid(candidate):
        return candidate.strip()
    return str(uuid.uuid4())


def mask_phone(phone: Optional[str]) -> str:
    """Mask all but the last three digits of a phone number for logs."""
    if not phone:
        return ""
    return "*" * max(len(phone) - 3, 0) + phone[-3:]


def calculate_cost(
    input_tokens: int,
    output_tokens: int,
    model: str
) -> float:
    """
    Calculate cost in USD for API call.

    Args:
        input_tokens: Number of input tokens
        output_tokens: Number of output tokens
        model: Model name

    Returns:
        Cost in USD
    """
    pricing = get_model_pricing(model)
    input_cost = (input_tokens / 1000) * pricing["input"]
    output_cost = (output_tokens / 1000) * pricing["output"]
    return input_cost + output_cost


def format_cost(cost_usd: float) -> str:
    """Format cost in USD with appropriate precision."""
    if cost_usd < 0.01:
        return f"${cost_usd:.4f}"
    return f"${cost_usd:.2f}"


def setup_logger(log_file: Path = None) -> None:
    """Configure loguru logger."""
    logger.remove()  # Remove default handler
    logger.add(
        lambda msg: print(msg, end=""),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
        level="INFO"
    )

    if log_file:
        ensure_dir(log_file.parent)
        logger.add(
            log_file,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}",
            level="DEBUG",
            rotation="10 MB"
        )

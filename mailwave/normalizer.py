"""
Key Normalizer
Purpose: Canonicalize business keys (organizational codes, names, handles)
so that keys from different extracts compare equal
"""

import re
from typing import Any, Optional

NULL_SENTINEL = "NULL"
DEFAULT_PAD_WIDTH = 3

_WHITESPACE_RE = re.compile(r"\s+")


def _as_text(raw: Any) -> str:
    """Stringify a cell value; None and NaN become the empty string."""
    if raw is None:
        return ""
    # NaN is the only value that is not equal to itself
    if isinstance(raw, float) and raw != raw:
        return ""
    return str(raw)


def normalize_code(raw: Any, pad_width: int = DEFAULT_PAD_WIDTH) -> Optional[str]:
    """
    Canonicalize an organizational code (KRO/GKZ).

    "7" -> "007", " 048 " -> "048", "1234" -> "1234" (never truncated).
    Empty values and the literal "NULL" map to None; "null" is an ordinary code.
    """
    text = _as_text(raw).strip()
    if not text or text == NULL_SENTINEL:
        return None
    return text.rjust(pad_width, "0")


def normalize_text_key(raw: Any) -> str:
    """Lower-case, trim and collapse whitespace for name-based keys."""
    text = _as_text(raw).strip()
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text).casefold()


def normalize_handle(raw: Any) -> str:
    """Mail handles compare case-insensitively."""
    return normalize_text_key(raw)


def split_codes(raw: Any, pad_width: int = DEFAULT_PAD_WIDTH) -> list:
    """Split a delimited alternate-code cell into normalized codes, order kept."""
    codes = []
    for part in re.split(r"[,;|]", _as_text(raw)):
        code = normalize_code(part, pad_width)
        if code and code not in codes:
            codes.append(code)
    return codes

"""Shared result container and helpers for the field normalizers.

Every normalizer is a pure function ``str | None -> <Result>`` that must be
idempotent and must never raise.  The ``never_raises`` decorator enforces the
second property: an internal failure is logged and converted into the
normalizer's "unknown" result with ``error`` populated, so the row processor
can record it without aborting the batch.
"""

from __future__ import annotations

import functools
import logging
import math
import re
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

R = TypeVar("R", bound="NormalizationResult")


# ---------------------------------------------------------------------------
# Result container
# ---------------------------------------------------------------------------


@dataclass
class NormalizationResult:
    """Outcome of normalising one raw cell.

    Attributes:
        original: Trimmed input text ("" when the cell was empty).
        normalized: Canonical display string; feeding it back into the same
            normalizer yields the same result.
        meets_requirements: Local compliance verdict for the component.
        reason: Human-readable failure reason ("" when compliant).
        error: Internal error message when the normalizer fell back to the
            unknown result, otherwise ``None``.
    """

    original: str = ""
    normalized: str = "Desconocido"
    meets_requirements: bool = False
    reason: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        """True when the value was parsed without an internal error."""
        return self.error is None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------


def never_raises(fallback: Callable[[str], R]) -> Callable[[Callable[..., R]], Callable[..., R]]:
    """Wrap a normalizer so any exception becomes ``fallback(original)``.

    Args:
        fallback: Factory building the "unknown" result from the raw text.

    Returns:
        Decorator preserving the wrapped function's signature.
    """

    def decorator(func: Callable[..., R]) -> Callable[..., R]:
        @functools.wraps(func)
        def wrapper(value: Any, *args: Any, **kwargs: Any) -> R:
            try:
                return func(value, *args, **kwargs)
            except Exception as exc:
                logger.exception("%s: fallo normalizando %r", func.__name__, value)
                result = fallback(clean_text(value))
                result.error = f"{type(exc).__name__}: {exc}"
                result.reason = result.reason or "Error en procesamiento"
                return result

        return wrapper

    return decorator


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

_BRACKETS_RE = re.compile(r"\[.*?\]")
_PARENS_RE = re.compile(r"\(.*?\)")
_SPACES_RE = re.compile(r"\s+")


def clean_text(value: Any) -> str:
    """Return ``value`` as a trimmed string; ``None``/NaN become ``""``."""
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    text = str(value).strip()
    if text.lower() in ("nan", "none", "null"):
        return ""
    return text


def strip_noise(text: str) -> str:
    """Lower-case and drop bracketed/parenthesised fragments and extra spaces."""
    text = _BRACKETS_RE.sub(" ", text)
    text = _PARENS_RE.sub(" ", text)
    return _SPACES_RE.sub(" ", text).strip().lower()


def to_float(raw: str) -> float:
    """Parse a decimal that may use a comma separator."""
    return float(raw.replace(",", "."))


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round like a spreadsheet does (0.5 goes up), unlike ``round``."""
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def nearest(value: float, candidates: list[int] | tuple[int, ...]) -> int:
    """Closest candidate; ties resolve to the earlier (smaller) entry."""
    best = candidates[0]
    best_diff = abs(value - best)
    for candidate in candidates[1:]:
        diff = abs(value - candidate)
        if diff < best_diff:
            best, best_diff = candidate, diff
    return best


def format_number(value: float) -> str:
    """Render ``4.0`` as ``"4"`` and ``1.5`` as ``"1.5"``."""
    return f"{value:g}"


def first_match(patterns: list[re.Pattern[str]], text: str) -> re.Match[str] | None:
    """Return the match of the first pattern that hits ``text``."""
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match
    return None


@dataclass
class KeywordTable:
    """Ordered ``(canonical, keywords)`` table for substring classification.

    Attributes:
        entries: Canonical label with the lower-case fragments mapping to it.
            Order matters: the first entry with a matching fragment wins.
        default: Label returned when nothing matches.
    """

    entries: list[tuple[str, tuple[str, ...]]] = field(default_factory=list)
    default: str | None = "Otro"

    def classify(self, value: Any) -> str | None:
        text = clean_text(value).lower()
        if not text:
            return None
        for canonical, keywords in self.entries:
            if text == canonical.lower():
                return canonical
            if any(keyword in text for keyword in keywords):
                return canonical
        return self.default

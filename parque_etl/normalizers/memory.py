"""Memory (RAM) normalizer."""

from __future__ import annotations

import re
from dataclasses import dataclass

from parque_etl.normalizers.base import (
    NormalizationResult,
    clean_text,
    first_match,
    format_number,
    nearest,
    never_raises,
    strip_noise,
    to_float,
)
from parque_etl.utils.constants import RAM_COMMERCIAL_GB
from parque_etl.validators.policy import RAM_POLICY, evaluate_policy

_GB_PATTERNS = [
    re.compile(r"(\d+[.,]\d+)\s*gb"),
    re.compile(r"(\d+[.,]\d+)\s*g\b"),
    re.compile(r"(\d+[.,]\d+)\s*gigabytes"),
    re.compile(r"(\d+[.,]\d+)\s*gigas"),
    re.compile(r"(\d+)\s*gb"),
    re.compile(r"(\d+)\s*g\b"),
    re.compile(r"(\d+)\s*gigabytes"),
    re.compile(r"(\d+)\s*gigas"),
]
_MB_PATTERNS = [
    re.compile(r"(\d+[.,]\d+)\s*mb"),
    re.compile(r"(\d+[.,]\d+)\s*m\b"),
    re.compile(r"(\d+[.,]\d+)\s*megabytes"),
    re.compile(r"(\d+)\s*mb"),
    re.compile(r"(\d+)\s*m\b"),
    re.compile(r"(\d+)\s*megabytes"),
]
_BARE_NUMBER_RE = re.compile(r"^(\d+[.,]?\d*)$")
_DDR_RE = re.compile(r"\b(?:lp)?(ddr[2-5])\b")
_SPEED_RE = re.compile(r"(\d+)\s*mhz")

# Bare numbers up to these magnitudes are read as GB, then MB; larger as KB
_BARE_GB_MAX = 64
_BARE_MB_MAX = 65536


@dataclass
class MemoryResult(NormalizationResult):
    """Normalised RAM.

    Attributes:
        capacity_gb: Commercial capacity in GB (0 when unknown).
        type: ``DDR2``..``DDR5``; ``DDR`` when the generation is not stated.
        speed_mhz: Module clock in MHz when present.
    """

    capacity_gb: int = 0
    type: str = "DDR"
    speed_mhz: int | None = None


def _unknown(original: str) -> MemoryResult:
    return MemoryResult(
        original=original,
        normalized="Desconocido",
        meets_requirements=False,
        reason="Datos de memoria no válidos",
    )


def parse_capacity_gb(cleaned: str) -> float:
    """Raw capacity in GB: explicit GB, then MB, then the bare-number heuristic."""
    match = first_match(_GB_PATTERNS, cleaned)
    if match:
        return to_float(match.group(1))
    match = first_match(_MB_PATTERNS, cleaned)
    if match:
        return to_float(match.group(1)) / 1024
    match = _BARE_NUMBER_RE.match(cleaned)
    if match:
        value = to_float(match.group(1))
        if value <= _BARE_GB_MAX:
            return value
        if value <= _BARE_MB_MAX:
            return value / 1024
        return value / (1024 * 1024)
    return 0.0


def round_to_commercial_ram(size_gb: float) -> int:
    """Snap to a module size actually sold; anything in (0, 4) becomes 4."""
    if size_gb <= 0:
        return 0
    if size_gb < 4:
        return 4
    return nearest(size_gb, RAM_COMMERCIAL_GB)


@never_raises(_unknown)
def normalize_ram(value: str | None) -> MemoryResult:
    """Normalise a RAM description and evaluate the portal-wide 16 GB minimum.

    Args:
        value: Raw cell text, e.g. ``"4096 MB"``, ``"8GB DDR4 2666MHz"``, ``"16"``.

    Returns:
        A ``MemoryResult``.  ``"4096 MB"`` gives ``capacity_gb=4``, ``type="DDR"``
        and a "Capacidad insuficiente" reason.
    """
    original = clean_text(value)
    if not original:
        return _unknown(original)

    cleaned = strip_noise(original)
    capacity = round_to_commercial_ram(parse_capacity_gb(cleaned))

    ddr = _DDR_RE.search(cleaned)
    ram_type = ddr.group(1).upper() if ddr else "DDR"

    speed = _SPEED_RE.search(cleaned)
    speed_mhz = int(speed.group(1)) if speed else None

    normalized = f"{format_number(capacity)} GB"
    if ram_type != "DDR":
        normalized += f" {ram_type}"
    if speed_mhz:
        normalized += f" {speed_mhz} MHz"

    meets, reason = evaluate_policy(RAM_POLICY, {"ram_gb": capacity})
    return MemoryResult(
        original=original,
        normalized=normalized,
        meets_requirements=meets,
        reason=reason,
        capacity_gb=capacity,
        type=ram_type,
        speed_mhz=speed_mhz,
    )

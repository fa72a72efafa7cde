"""Storage (disk) normalizer."""

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
    round_half_up,
    strip_noise,
    to_float,
)
from parque_etl.utils.constants import STORAGE_COMMERCIAL_GB
from parque_etl.validators.policy import STORAGE_POLICY, evaluate_policy

_SSD_RE = re.compile(r"\bssd\b|estado\s*s[oó]lido|solid\s*state|\bnvme\b|\bm\.2\b")
_HDD_RE = re.compile(r"\bhdd\b|disco\s*duro|hard\s*drive|mec[aá]nico|mechanical")

# "1 TR" is a frequent typo for "1 TB" in field reports
_TR_TYPO_RE = re.compile(r"\b1\s*tr\b")

_TB_PATTERNS = [
    re.compile(r"(\d+[.,]\d+)\s*tb"),
    re.compile(r"(\d+[.,]\d+)\s*t\b"),
    re.compile(r"(\d+[.,]\d+)\s*terabytes"),
    re.compile(r"(\d+)\s*tb"),
    re.compile(r"(\d+)\s*t\b"),
    re.compile(r"(\d+)\s*terabytes"),
]
_GB_PATTERNS = [
    re.compile(r"(\d+[.,]\d+)\s*gb"),
    re.compile(r"(\d+[.,]\d+)\s*g\b"),
    re.compile(r"(\d+[.,]\d+)\s*gigabytes"),
    re.compile(r"(\d+)\s*gb"),
    re.compile(r"(\d+)\s*g\b"),
    re.compile(r"(\d+)\s*gigabytes"),
]
_SIZE_AND_TYPE_RE = re.compile(r"^(\d+)\s*(?:ssd|hdd|nvme|m\.2)?$")
_BARE_NUMBER_RE = re.compile(r"^(\d+[.,]?\d*)$")

# Up to 20 GB inclusive is a 16 GB device; then (exclusive upper bound, size)
_SMALLEST_BAND_MAX = 20
_BANDS: list[tuple[float, int]] = [
    (50, 32),
    (80, 64),
    (130, 120),
    (220, 128),
    (280, 250),
    (400, 320),
    (490, 480),
    (600, 500),
    (800, 750),
]

_TB_THRESHOLD_GB = 900
_ONE_TB_BAND = (900, 1126)
_TB_SNAP_TOLERANCE = 0.2


@dataclass
class StorageResult(NormalizationResult):
    """Normalised storage.

    Attributes:
        capacity_gb: Commercial capacity in GB; TB sizes use base 1000
            (1 TB -> 1000) as drives are marketed.
        type: ``SSD`` | ``HDD`` | ``Desconocido``.
        display_capacity: Number shown in ``normalized``.
        display_unit: ``GB`` or ``TB``.
    """

    capacity_gb: int = 0
    type: str = "Desconocido"
    display_capacity: float = 0
    display_unit: str = "GB"


def _unknown(original: str) -> StorageResult:
    return StorageResult(
        original=original,
        normalized="Desconocido",
        meets_requirements=False,
        reason="Datos de almacenamiento no válidos",
    )


def detect_storage_type(cleaned: str) -> str:
    if _SSD_RE.search(cleaned):
        return "SSD"
    if _HDD_RE.search(cleaned):
        return "HDD"
    return "Desconocido"


def parse_capacity_gb(cleaned: str) -> float:
    """Raw capacity in GB: TB (x1024), GB, ``"500 SSD"`` form, bare number."""
    cleaned = _TR_TYPO_RE.sub("1 tb", cleaned)
    match = first_match(_TB_PATTERNS, cleaned)
    if match:
        return to_float(match.group(1)) * 1024
    match = first_match(_GB_PATTERNS, cleaned)
    if match:
        return to_float(match.group(1))
    match = _SIZE_AND_TYPE_RE.match(cleaned) or _BARE_NUMBER_RE.match(cleaned)
    if match:
        return to_float(match.group(1))
    return 0.0


def round_to_commercial_storage(size_gb: float) -> int:
    """Snap a raw GB capacity to a size actually sold.

    From 900 GB upwards the value is read in TB: within 0.2 of an integer TB
    it becomes that many TB (base 1000), [900, 1126) is exactly 1 TB, and
    anything else rounds to the nearest TB.  Below 900 GB the common bands
    apply, falling back to the nearest commercial size.
    """
    if size_gb <= 0:
        return 0
    if size_gb >= _TB_THRESHOLD_GB:
        size_tb = size_gb / 1024
        whole_tb = round_half_up(size_tb)
        if abs(whole_tb - size_tb) < _TB_SNAP_TOLERANCE:
            return int(whole_tb) * 1000
        if _ONE_TB_BAND[0] <= size_gb < _ONE_TB_BAND[1]:
            return 1000
        return int(whole_tb) * 1000
    if size_gb <= _SMALLEST_BAND_MAX:
        return 16
    for upper, commercial in _BANDS:
        if size_gb < upper:
            return commercial
    return nearest(size_gb, STORAGE_COMMERCIAL_GB)


def display_capacity(capacity_gb: int) -> tuple[float, str]:
    """``(number, unit)`` for presentation; TB with one decimal above 1000 GB."""
    if capacity_gb >= 1000:
        return round_half_up(capacity_gb / 102.4) / 10, "TB"
    return capacity_gb, "GB"


@never_raises(_unknown)
def normalize_storage(value: str | None) -> StorageResult:
    """Normalise a storage description and evaluate the 500 GB SSD policy.

    Args:
        value: Raw cell text, e.g. ``"SSD 256GB"``, ``"1 TR"``, ``"500"``.

    Returns:
        A ``StorageResult``.  ``"1 TR"`` is read as 1 TB (1024 GB), snapped to
        the commercial 1000 GB, and fails the SSD requirement because the
        type is not stated.
    """
    original = clean_text(value)
    if not original:
        return _unknown(original)

    cleaned = strip_noise(original)
    storage_type = detect_storage_type(cleaned)
    capacity = round_to_commercial_storage(parse_capacity_gb(cleaned))
    shown, unit = display_capacity(capacity)

    normalized = f"{format_number(shown)} {unit}"
    if storage_type != "Desconocido":
        normalized += f" {storage_type}"

    meets, reason = evaluate_policy(
        STORAGE_POLICY, {"disk_capacity_gb": capacity, "disk_type": storage_type}
    )
    return StorageResult(
        original=original,
        normalized=normalized,
        meets_requirements=meets,
        reason=reason,
        capacity_gb=capacity,
        type=storage_type,
        display_capacity=shown,
        display_unit=unit,
    )

"""Per-field normalizers for inventory spreadsheets.

Public API
----------
normalize_processor  — CPU text -> brand / model / generation / speed + verdict.
normalize_ram        — RAM text -> commercial GB, DDR type, MHz + verdict.
normalize_storage    — Disk text -> commercial GB, SSD/HDD + verdict.
normalize_os         — OS text -> OS_NAMES entry, legacy label + verdict.
categorical          — Table-driven vocabulary and scalar normalizers.

Every normalizer is idempotent on its own ``normalized`` output and never
raises; internal failures surface as ``result.error``.
"""

from parque_etl.normalizers.base import NormalizationResult  # noqa: F401
from parque_etl.normalizers.categorical import OperatingSystemResult, normalize_os  # noqa: F401
from parque_etl.normalizers.memory import MemoryResult, normalize_ram  # noqa: F401
from parque_etl.normalizers.processor import ProcessorResult, normalize_processor  # noqa: F401
from parque_etl.normalizers.storage import StorageResult, normalize_storage  # noqa: F401

__all__ = [
    "NormalizationResult",
    "OperatingSystemResult",
    "MemoryResult",
    "ProcessorResult",
    "StorageResult",
    "normalize_os",
    "normalize_ram",
    "normalize_processor",
    "normalize_storage",
]

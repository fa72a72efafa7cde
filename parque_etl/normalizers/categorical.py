"""Generic and categorical field normalizers.

Small, table-driven transformers for the fields that map onto a fixed
vocabulary (attention type, OS, browser, antivirus, connection type ...)
plus the scalar helpers used by the row processor: tri-state booleans,
versions, internet speeds, integers, identifiers and free-text strings.

All functions return ``None`` for empty input and never raise.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from parque_etl.normalizers.base import (
    KeywordTable,
    NormalizationResult,
    clean_text,
    never_raises,
    to_float,
)
from parque_etl.utils.constants import ATENCION_DEFAULT
from parque_etl.validators.policy import OS_POLICY, evaluate_policy

# ---------------------------------------------------------------------------
# Keyword tables
# ---------------------------------------------------------------------------

ATENCION_TABLE = KeywordTable(
    entries=[
        ("INBOUND", ("inbound", "entrada", "entrante", "incoming")),
        ("OUTBOUND", ("outbound", "salida", "saliente", "outgoing")),
        ("MIXTO", ("mixto", "mixed", "hibrido", "híbrido", "blended")),
        ("CHAT", ("chat",)),
        ("EMAIL", ("email", "e-mail", "correo", "mail")),
        ("SOPORTE", ("soporte", "support", "tecnico", "técnico", "helpdesk")),
    ],
    default=ATENCION_DEFAULT,
)

OS_TABLE = KeywordTable(
    entries=[
        ("Windows 11", ("windows 11", "win 11", "win11", "w11")),
        ("Windows 10", ("windows 10", "win 10", "win10", "w10")),
        ("macOS", ("macos", "mac os", "os x", "osx")),
        ("Chrome OS", ("chrome os", "chromeos")),
        ("Linux", ("linux", "ubuntu", "fedora", "debian", "centos", "mint")),
    ],
)

ARCHITECTURE_TABLE = KeywordTable(
    entries=[
        ("ARM64", ("arm64", "aarch64")),
        ("x64", ("x64", "amd64", "x86_64", "64")),
        ("x86", ("x86", "32")),
    ],
)

BROWSER_TABLE = KeywordTable(
    entries=[
        ("Edge", ("edge",)),
        ("Chrome", ("chrome", "chromium")),
        ("Firefox", ("firefox", "mozilla")),
        ("Safari", ("safari",)),
        ("Opera", ("opera",)),
        ("Internet Explorer", ("internet explorer", "iexplore")),
    ],
)

ANTIVIRUS_TABLE = KeywordTable(
    entries=[
        ("Windows Defender", ("windows defender", "defender", "microsoft security")),
        ("Kaspersky", ("kaspersky",)),
        ("Norton", ("norton", "symantec")),
        ("McAfee", ("mcafee",)),
        ("AVG", ("avg",)),
        ("Avast", ("avast",)),
        ("Bitdefender", ("bitdefender",)),
        ("ESET", ("eset", "nod32")),
        ("Malwarebytes", ("malwarebytes",)),
        ("Sophos", ("sophos",)),
        ("Trend Micro", ("trend micro", "trendmicro")),
        ("CrowdStrike", ("crowdstrike", "falcon")),
    ],
    default=None,
)

CONNECTION_TABLE = KeywordTable(
    entries=[
        ("Fibra", ("fibra", "fiber", "fibre", "ftth")),
        ("Cable", ("cable", "coaxial", "hfc")),
        ("DSL", ("dsl", "adsl", "vdsl")),
        ("Satelital", ("satelital", "satellite", "satélite")),
        ("Móvil 5G", ("5g",)),
        ("Móvil 4G", ("4g", "lte", "móvil", "movil", "mobile")),
    ],
)

CPU_BRAND_TABLE = KeywordTable(
    entries=[
        ("Intel", ("intel",)),
        ("AMD", ("amd", "ryzen")),
        ("Apple", ("apple", "m1", "m2", "m3")),
    ],
)

RAM_TYPE_TABLE = KeywordTable(
    entries=[
        ("DDR5", ("ddr5",)),
        ("DDR4", ("ddr4",)),
        ("DDR3", ("ddr3",)),
        ("DDR2", ("ddr2",)),
    ],
    default="DDR",
)

DISK_TYPE_TABLE = KeywordTable(
    entries=[
        ("NVMe", ("nvme", "pcie", "m.2")),
        ("SSD", ("ssd", "solid", "sólido", "solido")),
        ("HDD", ("hdd", "mechanical", "mecánico", "mecanico", "disco duro")),
        ("eMMC", ("emmc",)),
    ],
    default="Desconocido",
)

HEADSET_TYPE_TABLE = KeywordTable(
    entries=[
        ("USB", ("usb",)),
        ("Bluetooth", ("bluetooth", "bt")),
        ("Inalámbrico", ("inalámbrico", "inalambrico", "wireless")),
        ("Jack 3.5mm", ("jack", "3.5", "3,5", "analog", "analógico")),
    ],
)

_TRUE_TOKENS = frozenset({"true", "sí", "si", "yes", "y", "1", "activo", "enabled", "x", "ok", "actualizado"})
_FALSE_TOKENS = frozenset({"false", "no", "n", "0", "inactivo", "disabled", "desactualizado"})

_VERSION_RE = re.compile(r"\d+(?:\.\d+)*")
_SPEED_GBPS_RE = re.compile(r"(\d+(?:[.,]\d+)?)\s*gbps")
_SPEED_MBPS_RE = re.compile(r"(\d+(?:[.,]\d+)?)\s*(?:mbps|mb/s|mb|megas?)?")
_ID_STRIP_RE = re.compile(r"[^\w-]")
_HOSTNAME_STRIP_RE = re.compile(r"[^\w\-.]")
_WORD_RE = re.compile(r"\w\S*")
_IE_RE = re.compile(r"^ie\b|\bie\s*\d+\b")
_OS_LEGACY_RE = re.compile(r"windows\s*(xp|vista|7|8\.1|8)\b", re.IGNORECASE)
_OS_LEGACY_LABELS = {"xp": "XP", "vista": "Vista"}
_ARCH_RE = re.compile(r"\b(?:x86_64|x64|x86|amd64|arm64|aarch64|64|32)(?=\s*-?\s*bits?\b|\b)", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Vocabulary normalizers
# ---------------------------------------------------------------------------


def normalize_atencion(value: Any) -> str | None:
    """Map Spanish/English attention names onto ``TIPOS_ATENCION``.

    A non-empty value that matches nothing falls back to ``ATENCION_DEFAULT``.
    """
    return ATENCION_TABLE.classify(value)


def normalize_os_name(value: Any) -> str | None:
    return OS_TABLE.classify(value)


def normalize_architecture(value: Any) -> str | None:
    return ARCHITECTURE_TABLE.classify(value)


def normalize_browser_name(value: Any) -> str | None:
    # "ie" is too short for a substring match, so it only counts as a word
    if _IE_RE.search(clean_text(value).lower()):
        return "Internet Explorer"
    return BROWSER_TABLE.classify(value)


def normalize_antivirus(value: Any) -> str | None:
    """Known vendors get their canonical name; anything else is title-cased."""
    text = clean_text(value)
    if not text:
        return None
    if text.lower() in _FALSE_TOKENS or text.lower() in ("ninguno", "none", "sin antivirus"):
        return None
    return ANTIVIRUS_TABLE.classify(text) or capitalize_words(text)


def normalize_connection_type(value: Any) -> str | None:
    return CONNECTION_TABLE.classify(value)


def normalize_cpu_brand(value: Any) -> str | None:
    return CPU_BRAND_TABLE.classify(value)


def normalize_ram_type(value: Any) -> str | None:
    return RAM_TYPE_TABLE.classify(value)


def normalize_disk_type(value: Any) -> str | None:
    return DISK_TYPE_TABLE.classify(value)


def normalize_headset_type(value: Any) -> str | None:
    return HEADSET_TYPE_TABLE.classify(value)


# ---------------------------------------------------------------------------
# Operating system (with compliance)
# ---------------------------------------------------------------------------


@dataclass
class OperatingSystemResult(NormalizationResult):
    """Normalised OS.

    Attributes:
        name: Value from ``OS_NAMES``.
        version: Legacy Windows label (``"Windows 7"``) or version digits.
        architecture: ``x64`` | ``x86`` | ``ARM64`` when stated.
    """

    name: str | None = None
    version: str | None = None
    architecture: str | None = None


def _os_unknown(original: str) -> OperatingSystemResult:
    return OperatingSystemResult(original=original, normalized="Desconocido")


@never_raises(_os_unknown)
def normalize_os(value: Any) -> OperatingSystemResult:
    """Normalise an OS description and evaluate the Windows 11 requirement.

    Windows releases outside the vocabulary (XP, Vista, 7, 8, 8.1) map to
    ``"Otro"`` but keep their label in ``version`` and ``normalized``
    (``"Windows 8.1"``) so the business rules can flag them and normalising
    the output again yields the same result.
    """
    original = clean_text(value)
    name = OS_TABLE.classify(original)
    version: str | None = None
    normalized = name or "Desconocido"
    legacy = _OS_LEGACY_RE.search(original)
    if name == "Otro" and legacy:
        release = legacy.group(1).lower()
        version = normalized = f"Windows {_OS_LEGACY_LABELS.get(release, release)}"
    elif name:
        remainder = re.sub(r"windows\s*1[01]", " ", original, flags=re.IGNORECASE)
        remainder = _ARCH_RE.sub(" ", remainder)
        version = extract_version(remainder)

    arch = _ARCH_RE.search(original)
    architecture = ARCHITECTURE_TABLE.classify(arch.group(0)) if arch else None

    meets, reason = evaluate_policy(OS_POLICY, {"os_name": name})
    return OperatingSystemResult(
        original=original,
        normalized=normalized,
        meets_requirements=meets,
        reason=reason,
        name=name,
        version=version,
        architecture=architecture,
    )


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------


def normalize_boolean(value: Any) -> bool | None:
    """Tri-state boolean: unknown tokens give ``None``, never ``False``."""
    if isinstance(value, bool):
        return value
    text = clean_text(value).lower()
    if text in _TRUE_TOKENS:
        return True
    if text in _FALSE_TOKENS:
        return False
    return None


def extract_version(value: Any) -> str | None:
    """First dotted number in the text, e.g. ``"Chrome 118.0.5993"`` -> ``"118.0.5993"``."""
    match = _VERSION_RE.search(clean_text(value))
    return match.group(0) if match else None


def normalize_speed_mbps(value: Any) -> float | None:
    """Internet speed in Mbps; ``Gbps`` values are multiplied by 1000."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    text = clean_text(value).lower()
    if not text:
        return None
    match = _SPEED_GBPS_RE.search(text)
    if match:
        return to_float(match.group(1)) * 1000
    match = _SPEED_MBPS_RE.search(text)
    if match:
        return to_float(match.group(1))
    return None


def normalize_cpu_speed_ghz(value: Any) -> float | None:
    """CPU clock in GHz; MHz (or bare values above 100) are divided by 1000."""
    text = clean_text(value).lower()
    if not text:
        return None
    match = re.search(r"(\d+(?:[.,]\d+)?)\s*(ghz|mhz)?", text)
    if not match:
        return None
    number = to_float(match.group(1))
    if match.group(2) == "mhz" or (match.group(2) is None and number > 100):
        return round(number / 1000, 2)
    return number


def normalize_integer(value: Any, minimo: int | None = None, maximo: int | None = None) -> int | None:
    """Integer with optional clamping; non-numeric text gives ``None``."""
    text = clean_text(value)
    match = re.search(r"-?\d+(?:[.,]\d+)?", text)
    if not match:
        return None
    number = int(round(to_float(match.group(0))))
    if minimo is not None:
        number = max(minimo, number)
    if maximo is not None:
        number = min(maximo, number)
    return number


def capitalize_words(text: str) -> str:
    return _WORD_RE.sub(lambda m: m.group(0)[0].upper() + m.group(0)[1:].lower(), text)


def normalize_string(
    value: Any,
    uppercase: bool = False,
    capitalize: bool = False,
    max_length: int | None = None,
) -> str | None:
    text = clean_text(value)
    if not text:
        return None
    text = re.sub(r"\s+", " ", text)
    if uppercase:
        text = text.upper()
    elif capitalize:
        text = capitalize_words(text)
    if max_length is not None:
        text = text[:max_length]
    return text


def normalize_id(value: Any) -> str | None:
    text = _ID_STRIP_RE.sub("", clean_text(value))
    return text or None


def normalize_hostname(value: Any) -> str | None:
    text = _HOSTNAME_STRIP_RE.sub("", clean_text(value)).upper()
    return text or None

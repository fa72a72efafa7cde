"""Processor (CPU) normalizer.

Turns free-text such as ``"Intel(R) Core(TM) i5-8400 CPU @ 2.80GHz"`` into
brand / model family / model number / generation / clock speed, and applies
the CPU compliance policy from ``validators.policy``.

Detection order
---------------
1. Brand by explicit keyword (intel, amd), then by family context
   (``i5-``, pentium, ryzen ...); otherwise ``"Otro"``.
2. Brand-specific family: Core i3/i5/i7/i9, Celeron, Pentium, Xeon for Intel;
   Ryzen 3/5/7/9, Athlon, Phenom, EPYC for AMD.
3. Model number and generation (leading digit, or two leading digits for
   five-digit Core numbers such as 10400, 12700).
4. Clock speed via ordered patterns, then the largest decimal in the
   plausible CPU range [1.0, 5.5] GHz.
5. Explicit "8th gen" / "gen 10" text when no model number gave one.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from parque_etl.normalizers.base import (
    NormalizationResult,
    clean_text,
    first_match,
    never_raises,
    to_float,
)
from parque_etl.validators.policy import CPU_NO_CUMPLE, CPU_POLICY, evaluate_policy

_SPEED_MIN_GHZ = 1.0
_SPEED_MAX_GHZ = 5.5

# ---------------------------------------------------------------------------
# Cleaning patterns
# ---------------------------------------------------------------------------

_TRADEMARK_RE = re.compile(r"\((?:r|tm)\)|®|™", re.IGNORECASE)
_BRACKETS_RE = re.compile(r"\[.*?\]")
_PARENS_RE = re.compile(r"\(.*?\)")
_NOISE_WORDS_RE = re.compile(
    r"\b(?:processor|procesador|cpu|with|con|de|dual|quad|cores?|núcleos|nucleos)\b",
    re.IGNORECASE,
)
_VERSION_RE = re.compile(r"\bv\d+\b", re.IGNORECASE)
_SPACES_RE = re.compile(r"\s+")

# ---------------------------------------------------------------------------
# Brand detection
# ---------------------------------------------------------------------------

_INTEL_RE = re.compile(r"\b(?:intel|intell|inten)\b", re.IGNORECASE)
_AMD_RE = re.compile(r"\b(?:amd|advanced\s*micro\s*devices)\b", re.IGNORECASE)

_BRAND_CONTEXT: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\bi[3579](?:[-\s]|\d{3})", re.IGNORECASE), "Intel"),
    (re.compile(r"core\s*i[3579]", re.IGNORECASE), "Intel"),
    (re.compile(r"pentium|celeron|xeon", re.IGNORECASE), "Intel"),
    (re.compile(r"ryzen|phenom|athlon|threadripper|epyc", re.IGNORECASE), "AMD"),
]

# ---------------------------------------------------------------------------
# Model detection
# ---------------------------------------------------------------------------

_CORE_FAMILY_RE = re.compile(r"\bi([3579])(?=[-\s]|\d|$)", re.IGNORECASE)

_INTEL_NUMBER_PATTERNS = [
    re.compile(r"i[3579][-\s]+(\d{3,5}[a-z]*)", re.IGNORECASE),
    re.compile(r"i[3579](\d{4,5}[a-z]*)", re.IGNORECASE),
    re.compile(r"i[3579][-\s]+(\d+)", re.IGNORECASE),
]

_XEON_NUMBER_RE = re.compile(
    r"xeon\s*((?:e\d|w)[-\s]?\d{4}[a-uw-z]*(?:\s*v\d)?|(?:gold|silver|bronze|platinum)\s*\d{4}[a-z]*"
    r"|(?:gold|silver|bronze|platinum))",
    re.IGNORECASE,
)

_RYZEN_FAMILY_RE = re.compile(r"ryzen\s*([3579])\b", re.IGNORECASE)
_RYZEN_NUMBER_PATTERNS = [
    re.compile(r"ryzen\s*\d\s+(\d{4}[a-z]*)", re.IGNORECASE),
    re.compile(r"ryzen\s*(\d{4}[a-z]*)", re.IGNORECASE),
]

_INTEL_SUFFIXES = {
    "K": "Desbloqueado",
    "F": "Sin gráficos integrados",
    "KF": "Desbloqueado sin gráficos integrados",
    "T": "Bajo consumo",
    "U": "Ultra bajo consumo",
    "H": "Alto rendimiento",
}
_AMD_SUFFIXES = {
    "X": "Alto rendimiento",
    "XT": "Rendimiento mejorado",
    "G": "Con gráficos integrados",
}

# ---------------------------------------------------------------------------
# Speed / generation
# ---------------------------------------------------------------------------

_SPEED_PATTERNS = [
    re.compile(r"(\d+[.,]\d+)\s*ghz", re.IGNORECASE),
    re.compile(r"@\s*(\d+[.,]\d+)", re.IGNORECASE),
    re.compile(r"(\d+[.,]\d+)\s*gh", re.IGNORECASE),
]
_DECIMAL_RE = re.compile(r"\b(\d+[.,]\d+)\b")

_GENERATION_PATTERNS = [
    re.compile(r"(\d{1,2})\s*(?:th|nd|rd|st|º|°|ª|va|ma|da|ra)\s*gen", re.IGNORECASE),
    re.compile(r"gen(?:eration|eración)?[\s:-]*(\d{1,2})", re.IGNORECASE),
]


@dataclass
class ProcessorResult(NormalizationResult):
    """Normalised processor.

    Attributes:
        brand: ``Intel`` | ``AMD`` | ``Otro`` (``Desconocido`` for empty input).
        model: Family label, e.g. ``"Core i5"``, ``"Ryzen 7"``, ``"Xeon"``.
        model_number: e.g. ``"8400"``, ``"3700X"``, ``"E5-2680 v4"``.
        generation: Integer generation when derivable.
        architecture: Meaning of the model suffix (K, F, X, ...).
        speed: Display speed (``"2.8 GHz"``) or ``None``.
        speed_value: Numeric GHz, 0.0 when unknown.
    """

    brand: str = "Desconocido"
    model: str = "Desconocido"
    model_number: str | None = None
    generation: int | None = None
    architecture: str | None = None
    speed: str | None = None
    speed_value: float = 0.0


def _unknown(original: str) -> ProcessorResult:
    return ProcessorResult(
        original=original,
        normalized="Desconocido",
        meets_requirements=False,
        reason="Datos de procesador no válidos",
    )


# ---------------------------------------------------------------------------
# Helpers (pure, independently testable)
# ---------------------------------------------------------------------------


def clean_processor_text(text: str, keep_version: bool = False) -> str:
    """Strip trademarks, bracketed notes, filler words and version tags."""
    cleaned = _BRACKETS_RE.sub(" ", text)
    cleaned = _TRADEMARK_RE.sub("", cleaned)
    cleaned = _PARENS_RE.sub(" ", cleaned)
    cleaned = _NOISE_WORDS_RE.sub(" ", cleaned)
    if not keep_version:
        cleaned = _VERSION_RE.sub(" ", cleaned)
    return _SPACES_RE.sub(" ", cleaned).strip()


def detect_brand(cleaned: str) -> str:
    if _INTEL_RE.search(cleaned):
        return "Intel"
    if _AMD_RE.search(cleaned):
        return "AMD"
    for pattern, brand in _BRAND_CONTEXT:
        if pattern.search(cleaned):
            return brand
    return "Otro"


def generation_from_number(model_number: str | None) -> int | None:
    """Derive the generation from the leading digits of a model number."""
    if not model_number:
        return None
    digits = re.match(r"\d+", model_number)
    if not digits:
        return None
    number = digits.group(0)
    if len(number) == 5:
        return int(number[:2])
    if len(number) in (3, 4):
        return int(number[0])
    return None


def extract_speed(cleaned: str) -> float | None:
    """Clock speed in GHz or ``None``.

    Tries explicit patterns first; otherwise the largest decimal inside the
    plausible range wins.
    """
    match = first_match(_SPEED_PATTERNS, cleaned)
    if match:
        return to_float(match.group(1))
    candidates = [to_float(m) for m in _DECIMAL_RE.findall(cleaned)]
    plausible = [c for c in candidates if _SPEED_MIN_GHZ <= c <= _SPEED_MAX_GHZ]
    return max(plausible) if plausible else None


def _suffix_meaning(model_number: str | None, table: dict[str, str]) -> str | None:
    if not model_number:
        return None
    match = re.search(r"([A-Z]+)$", model_number)
    if not match:
        return None
    suffix = match.group(1)
    return table.get(suffix, f"Sufijo {suffix}")


def _detect_intel(cleaned: str, versioned: str) -> tuple[str, str | None]:
    family = _CORE_FAMILY_RE.search(cleaned)
    if family:
        match = first_match(_INTEL_NUMBER_PATTERNS, cleaned)
        return f"Core i{family.group(1)}", match.group(1).upper() if match else None
    lower = cleaned.lower()
    if "celeron" in lower:
        return "Celeron", None
    if "pentium" in lower:
        return "Pentium", None
    if "xeon" in lower:
        # Version tags (v3, v4) are stripped from ``cleaned``
        match = _XEON_NUMBER_RE.search(versioned)
        number = _SPACES_RE.sub(" ", match.group(1)).strip() if match else None
        if number and number[0].lower() in "ew":
            number = number.upper().replace("V", " v").replace("  ", " ")
        elif number:
            number = number.title()
        return "Xeon", number
    return "Otro Intel", None


def _detect_amd(cleaned: str) -> tuple[str, str | None]:
    lower = cleaned.lower()
    if "ryzen" in lower:
        family = _RYZEN_FAMILY_RE.search(cleaned)
        model = f"Ryzen {family.group(1)}" if family else "Ryzen"
        match = first_match(_RYZEN_NUMBER_PATTERNS, cleaned)
        return model, match.group(1).upper() if match else None
    if "athlon" in lower:
        return "Athlon", None
    if "phenom" in lower:
        return "Phenom", None
    if "epyc" in lower:
        return "EPYC", None
    return "Otro AMD", None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


@never_raises(_unknown)
def normalize_processor(value: str | None) -> ProcessorResult:
    """Normalise a processor description and evaluate CPU compliance.

    Args:
        value: Raw cell text.

    Returns:
        A ``ProcessorResult``; empty input yields brand/model ``Desconocido``
        with reason ``"Datos de procesador no válidos"``.
    """
    original = clean_text(value)
    if not original:
        return _unknown(original)

    cleaned = clean_processor_text(original)
    brand = detect_brand(cleaned)

    model_number: str | None = None
    architecture: str | None = None
    if brand == "Intel":
        model, model_number = _detect_intel(
            cleaned, clean_processor_text(original, keep_version=True)
        )
        if model.startswith("Core"):
            architecture = _suffix_meaning(model_number, _INTEL_SUFFIXES)
    elif brand == "AMD":
        model, model_number = _detect_amd(cleaned)
        architecture = _suffix_meaning(model_number, _AMD_SUFFIXES)
    else:
        model = "Desconocido"

    generation = None
    if model.startswith("Core") or model.startswith("Ryzen"):
        generation = generation_from_number(model_number)
    if generation is None:
        match = first_match(_GENERATION_PATTERNS, cleaned)
        if match:
            generation = int(match.group(1))

    speed_value = extract_speed(cleaned)
    speed = f"{speed_value:.1f} GHz" if speed_value else None

    normalized = f"{brand} {model}"
    if model_number:
        sep = "-" if model.startswith("Core") else " "
        normalized += f"{sep}{model_number}"
    if speed:
        normalized += f" @ {speed}"

    rules = CPU_POLICY.get((brand, model))
    if rules is None:
        meets, reason = False, CPU_NO_CUMPLE.format(brand=brand, model=model)
    else:
        meets, reason = evaluate_policy(
            rules,
            {
                "cpu_generation": generation,
                "cpu_speed_ghz": round(speed_value, 1) if speed_value else None,
                "cpu_model_number": model_number,
            },
        )

    return ProcessorResult(
        original=original,
        normalized=normalized,
        meets_requirements=meets,
        reason=reason,
        brand=brand,
        model=model,
        model_number=model_number,
        generation=generation,
        architecture=architecture,
        speed=speed,
        speed_value=round(speed_value, 1) if speed_value else 0.0,
    )

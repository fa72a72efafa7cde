"""
Scoring helpers: sub-scores, aggregate score and compliance tier.

Sub-scores (hardware, software, conectividad) start at 100 and lose
15 points per business-rule error and 5 per warning of their category, plus
25 points for each failed component verdict of that category:

- hardware:     cpu, ram, storage verdicts; ram/cpu/disk/headset rules
- software:     os verdict; os/browser/antivirus rules
- conectividad: speed verdict; connectivity rule

Every sub-score is floored at 0.  ``score_total`` is the mean of the
non-zero sub-scores rounded to two decimals (0 when all are 0), and
``nivel_cumplimiento`` is a step function of it.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from parque_etl.utils.constants import (
    NIVELES_CUMPLIMIENTO,
    PENALIZACION_ADVERTENCIA,
    PENALIZACION_COMPONENTE,
    PENALIZACION_ERROR,
)

# Business-rule category -> sub-score
_CATEGORIA_SCORE: dict[str, str] = {
    "hardware": "score_hardware",
    "software": "score_software",
    "conectividad": "score_conectividad",
}

# Component verdict flag -> sub-score
_COMPONENTE_SCORE: dict[str, str] = {
    "cpu_meets_requirements": "score_hardware",
    "ram_meets_requirements": "score_hardware",
    "disk_meets_requirements": "score_hardware",
    "os_meets_requirements": "score_software",
    "speed_meets_requirements": "score_conectividad",
}


def nivel_cumplimiento(score: float) -> str:
    """EXCELENTE ≥ 90, BUENO ≥ 80, ACEPTABLE ≥ 70, DEFICIENTE ≥ 50, else CRITICO."""
    for umbral, nivel in NIVELES_CUMPLIMIENTO:
        if score >= umbral:
            return nivel
    return NIVELES_CUMPLIMIENTO[-1][1]


def score_total(sub_scores: Iterable[float | None]) -> float:
    """Mean of the non-zero sub-scores, rounded to 2 decimals."""
    valores = [s for s in sub_scores if s]
    if not valores:
        return 0.0
    return round(sum(valores) / len(valores), 2)


def calcular_sub_scores(
    record: dict[str, Any],
    errores: Iterable[dict[str, Any]],
    advertencias: Iterable[dict[str, Any]],
) -> dict[str, float]:
    """Sub-scores for one record.

    Args:
        record: Record carrying the ``*_meets_requirements`` flags.
        errores: Business-rule error findings (``categoria`` key).
        advertencias: Business-rule warning findings.

    Returns:
        ``{"score_hardware": …, "score_software": …, "score_conectividad": …}``.
    """
    puntos = {campo: 100.0 for campo in _CATEGORIA_SCORE.values()}

    for item in errores:
        campo = _CATEGORIA_SCORE.get(item.get("categoria", ""))
        if campo:
            puntos[campo] -= PENALIZACION_ERROR
    for item in advertencias:
        campo = _CATEGORIA_SCORE.get(item.get("categoria", ""))
        if campo:
            puntos[campo] -= PENALIZACION_ADVERTENCIA
    for flag, campo in _COMPONENTE_SCORE.items():
        if record.get(flag) is False:
            puntos[campo] -= PENALIZACION_COMPONENTE

    return {campo: max(0.0, valor) for campo, valor in puntos.items()}


def aplicar_scores(
    record: dict[str, Any],
    errores: Iterable[dict[str, Any]],
    advertencias: Iterable[dict[str, Any]],
) -> dict[str, Any]:
    """Write sub-scores, ``score_total`` and ``nivel_cumplimiento`` into ``record``."""
    subs = calcular_sub_scores(record, errores, advertencias)
    record.update(subs)
    record["score_total"] = score_total(subs.values())
    record["nivel_cumplimiento"] = nivel_cumplimiento(record["score_total"])
    return record

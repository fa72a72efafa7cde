"""Shared container for validator findings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

SEVERIDAD_ERROR = "error"
SEVERIDAD_WARNING = "warning"
SEVERIDAD_INFO = "info"


def finding(
    campo: str | None,
    tipo: str,
    mensaje: str,
    severidad: str,
    **extra: Any,
) -> dict[str, Any]:
    """Build one finding dict; ``extra`` keys (regla, accion_sugerida ...) are kept."""
    data: dict[str, Any] = {
        "campo": campo,
        "tipo": tipo,
        "mensaje": mensaje,
        "severidad": severidad,
    }
    data.update(extra)
    return data


@dataclass
class ValidationReport:
    """Findings for one record, bucketed by severity.

    Attributes:
        errores: Blocking findings.
        advertencias: Non-blocking findings that lower the score.
        informacion: Informational findings.
        score_validacion: 0-100 score when the validator computes one.
    """

    errores: list[dict[str, Any]] = field(default_factory=list)
    advertencias: list[dict[str, Any]] = field(default_factory=list)
    informacion: list[dict[str, Any]] = field(default_factory=list)
    score_validacion: int | None = None

    @property
    def valido(self) -> bool:
        return not self.errores

    @property
    def total_problemas(self) -> int:
        return len(self.errores) + len(self.advertencias)

    def add(self, item: dict[str, Any]) -> None:
        """Route a finding to its bucket by ``severidad``."""
        severidad = item.get("severidad")
        if severidad == SEVERIDAD_ERROR:
            self.errores.append(item)
        elif severidad == SEVERIDAD_WARNING:
            self.advertencias.append(item)
        else:
            self.informacion.append(item)

    def extend(self, other: ValidationReport) -> None:
        self.errores.extend(other.errores)
        self.advertencias.extend(other.advertencias)
        self.informacion.extend(other.informacion)

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "errores": list(self.errores),
            "advertencias": list(self.advertencias),
            "informacion": list(self.informacion),
        }
        if self.score_validacion is not None:
            data["score_validacion"] = self.score_validacion
        return data

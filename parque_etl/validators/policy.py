"""
Compliance policies expressed as declarative rules.

The per-component verdicts computed by the normalizers (CPU, RAM, storage,
OS, internet speed) and the context-scaled thresholds used by the business
rule validator share one representation: ``PolicyRule``, a tagged union of
four kinds.

- ``RANGE``              value must fall inside [minimo, maximo]
- ``ENUM``               value must be one of ``valores``
- ``PATTERN``            value must match the ``patron`` regex
- ``BUSINESS_THRESHOLD`` value must reach the threshold selected from
                         ``umbrales`` by the record's ``contexto`` field

The same objects are persisted as ``ValidationRule`` rows by
``validation_rule_service.crear_reglas_por_defecto`` so the catalogue shows
exactly the thresholds the pipeline applies.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from parque_etl.utils.constants import (
    CONECTIVIDAD_MINIMA_POR_ATENCION,
    CPU_I5_MIN_GENERATION,
    CPU_I5_MIN_GHZ,
    CPU_RYZEN5_MIN_GHZ,
    OS_REQUERIDO,
    RAM_MIN_GB,
    RAM_MINIMA_POR_ATENCION,
    STORAGE_MIN_GB,
    VELOCIDAD_MIN_BAJADA_MBPS,
    VELOCIDAD_MIN_SUBIDA_MBPS,
)

RULE_KINDS = ("RANGE", "ENUM", "PATTERN", "BUSINESS_THRESHOLD")


class _Desconocido(dict):
    """``str.format_map`` helper rendering missing keys as 'Desconocida'."""

    def __missing__(self, key: str) -> str:
        return "Desconocida"


# ---------------------------------------------------------------------------
# Rule structure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PolicyRule:
    """One declarative compliance check.

    Attributes:
        codigo: Stable identifier, persisted as ``ValidationRule.codigo_regla``.
        tipo: One of ``RULE_KINDS``.
        campo: Record field the rule inspects.
        mensaje: ``str.format`` template for the failure reason.  ``{valor}``
            is the inspected value rendered with ``formato``; ``{minimo}``
            is the applicable threshold; any record field can also be used.
        minimo: Lower bound (RANGE) inclusive.
        maximo: Upper bound (RANGE) inclusive.
        valores: Allowed values (ENUM).
        patron: Regex searched case-insensitively (PATTERN).
        contexto: Record field selecting the threshold (BUSINESS_THRESHOLD).
        umbrales: ``(context value, threshold)`` pairs (BUSINESS_THRESHOLD).
        umbral_defecto: Threshold when the context value is not listed.
        formato: Format spec applied to numeric values in ``{valor}``.
        categoria: ValidationRule category the rule belongs to.
        severidad: Severity recorded when the rule fails.
    """

    codigo: str
    tipo: str
    campo: str
    mensaje: str
    minimo: float | None = None
    maximo: float | None = None
    valores: tuple[str, ...] = ()
    patron: str | None = None
    contexto: str | None = None
    umbrales: tuple[tuple[str, float], ...] = ()
    umbral_defecto: float | None = None
    formato: str = "{:g}"
    categoria: str = "HARDWARE"
    severidad: str = "ERROR"

    def __post_init__(self) -> None:
        if self.tipo not in RULE_KINDS:
            raise ValueError(f"Tipo de regla desconocido: {self.tipo}")

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def umbral(self, valores: Mapping[str, Any]) -> float | None:
        """Threshold that applies to this record (RANGE min or context lookup)."""
        if self.tipo != "BUSINESS_THRESHOLD":
            return self.minimo
        clave = valores.get(self.contexto) if self.contexto else None
        return dict(self.umbrales).get(clave, self.umbral_defecto)

    def cumple(self, valores: Mapping[str, Any]) -> bool:
        valor = valores.get(self.campo)
        if self.tipo == "ENUM":
            return valor in self.valores
        if self.tipo == "PATTERN":
            return isinstance(valor, str) and bool(
                re.search(self.patron or "", valor, re.IGNORECASE)
            )
        if valor is None:
            return False
        try:
            numero = float(valor)
        except (TypeError, ValueError):
            return False
        minimo = self.umbral(valores)
        if minimo is not None and numero < minimo:
            return False
        if self.maximo is not None and numero > self.maximo:
            return False
        return True

    def evaluate(self, valores: Mapping[str, Any]) -> str | None:
        """Return the failure reason, or ``None`` when the record complies."""
        if self.cumple(valores):
            return None
        contexto = _Desconocido(
            {k: v for k, v in valores.items() if v is not None}
        )
        contexto["valor"] = self.render(valores.get(self.campo))
        umbral = self.umbral(valores)
        if umbral is not None:
            contexto["minimo"] = f"{umbral:g}"
        return self.mensaje.format_map(contexto)

    def render(self, valor: Any) -> str:
        if valor is None or valor == "":
            return "Desconocida"
        if isinstance(valor, (int, float)) and not isinstance(valor, bool):
            return self.formato.format(valor)
        return str(valor)

    # ------------------------------------------------------------------
    # Persistence mapping
    # ------------------------------------------------------------------

    def as_rule_kwargs(self, nombre: str | None = None) -> dict[str, Any]:
        """Column values for an equivalent ``ValidationRule`` row."""
        kwargs: dict[str, Any] = {
            "nombre": nombre or self.codigo.replace("_", " ").capitalize(),
            "codigo_regla": self.codigo,
            "campo_objetivo": self.campo,
            "severidad": self.severidad,
            "mensaje_error": self.mensaje,
            "categoria": self.categoria,
        }
        if self.tipo == "RANGE":
            kwargs["tipo_validacion"] = "RANGE"
            kwargs["operador"] = "BETWEEN" if self.maximo is not None else "GREATER_EQUAL"
            kwargs["valor_minimo"] = self.minimo
            kwargs["valor_maximo"] = self.maximo
        elif self.tipo == "ENUM":
            kwargs["tipo_validacion"] = "ENUM"
            kwargs["operador"] = "IN"
            kwargs["valor_esperado"] = list(self.valores)
        elif self.tipo == "PATTERN":
            kwargs["tipo_validacion"] = "PATTERN"
            kwargs["operador"] = "REGEX"
            kwargs["valor_esperado"] = self.patron
        else:
            kwargs["tipo_validacion"] = "BUSINESS"
            kwargs["operador"] = "GREATER_EQUAL"
            kwargs["valor_esperado"] = {
                "contexto": self.contexto,
                "umbrales": dict(self.umbrales),
                "defecto": self.umbral_defecto,
            }
            kwargs["campos_dependientes"] = [self.contexto] if self.contexto else []
        return kwargs


def evaluate_policy(
    rules: tuple[PolicyRule, ...] | list[PolicyRule],
    valores: Mapping[str, Any],
) -> tuple[bool, str]:
    """Run ``rules`` in order and stop at the first failure.

    Args:
        rules: Ordered policy rules; an empty sequence always complies.
        valores: Structured values of the component or record.

    Returns:
        ``(meets_requirements, reason)``; reason is ``""`` when compliant.
    """
    for rule in rules:
        reason = rule.evaluate(valores)
        if reason is not None:
            return False, reason
    return True, ""


# ---------------------------------------------------------------------------
# Component policies
# ---------------------------------------------------------------------------

CPU_I5_GENERACION = PolicyRule(
    codigo="CPU_I5_GENERACION",
    tipo="RANGE",
    campo="cpu_generation",
    minimo=CPU_I5_MIN_GENERATION,
    mensaje="Generación insuficiente: {valor} Gen (requiere {minimo}va Gen o superior)",
)
CPU_I5_VELOCIDAD = PolicyRule(
    codigo="CPU_I5_VELOCIDAD",
    tipo="RANGE",
    campo="cpu_speed_ghz",
    minimo=CPU_I5_MIN_GHZ,
    formato="{:.1f} GHz",
    mensaje="Velocidad insuficiente: {valor} (requiere 3.0 GHz o superior)",
)
CPU_RYZEN5_VELOCIDAD = PolicyRule(
    codigo="CPU_RYZEN5_VELOCIDAD",
    tipo="RANGE",
    campo="cpu_speed_ghz",
    minimo=CPU_RYZEN5_MIN_GHZ,
    formato="{:.1f} GHz",
    mensaje="Velocidad insuficiente: {valor} (requiere {minimo} GHz o superior)",
)
CPU_XEON_SERIE = PolicyRule(
    codigo="CPU_XEON_SERIE",
    tipo="PATTERN",
    campo="cpu_model_number",
    patron=r"\bv[3-9]\b|gold|silver|bronze|platinum",
    mensaje="Se requiere Xeon E5 v3+ o serie Gold/Silver/Bronze/Platinum",
)

# (brand, model) -> rules; an empty tuple always complies, an absent key fails
CPU_POLICY: dict[tuple[str, str], tuple[PolicyRule, ...]] = {
    ("Intel", "Core i5"): (CPU_I5_GENERACION, CPU_I5_VELOCIDAD),
    ("Intel", "Core i7"): (),
    ("Intel", "Core i9"): (),
    ("Intel", "Xeon"): (CPU_XEON_SERIE,),
    ("AMD", "Ryzen 5"): (CPU_RYZEN5_VELOCIDAD,),
    ("AMD", "Ryzen 7"): (),
    ("AMD", "Ryzen 9"): (),
    ("AMD", "EPYC"): (),
}

CPU_NO_CUMPLE = "Procesador no cumple especificaciones mínimas: {brand} {model}"

RAM_POLICY: tuple[PolicyRule, ...] = (
    PolicyRule(
        codigo="RAM_MINIMA_PORTAL",
        tipo="RANGE",
        campo="ram_gb",
        minimo=RAM_MIN_GB,
        formato="{:g} GB",
        mensaje="Capacidad insuficiente: {valor} (requiere {minimo} GB o más)",
    ),
)

STORAGE_POLICY: tuple[PolicyRule, ...] = (
    PolicyRule(
        codigo="DISCO_CAPACIDAD_MINIMA",
        tipo="RANGE",
        campo="disk_capacity_gb",
        minimo=STORAGE_MIN_GB,
        formato="{:g} GB",
        mensaje="Capacidad insuficiente: {valor} (requiere {minimo} GB o más)",
    ),
    PolicyRule(
        codigo="DISCO_SSD_REQUERIDO",
        tipo="ENUM",
        campo="disk_type",
        valores=("SSD",),
        mensaje="Se requiere SSD pero se detectó otro tipo de almacenamiento",
    ),
)

OS_POLICY: tuple[PolicyRule, ...] = (
    PolicyRule(
        codigo="SO_REQUERIDO",
        tipo="ENUM",
        campo="os_name",
        valores=(OS_REQUERIDO,),
        categoria="SOFTWARE",
        mensaje=f"Se requiere {OS_REQUERIDO}",
    ),
)

_VELOCIDAD_REMOTA = (
    "Velocidad de internet insuficiente: {speed_download_mbps}/{speed_upload_mbps} Mbps "
    f"(requiere {VELOCIDAD_MIN_BAJADA_MBPS:g}/{VELOCIDAD_MIN_SUBIDA_MBPS:g} Mbps)"
)

SPEED_POLICY: tuple[PolicyRule, ...] = (
    PolicyRule(
        codigo="VELOCIDAD_BAJADA_MINIMA",
        tipo="RANGE",
        campo="speed_download_mbps",
        minimo=VELOCIDAD_MIN_BAJADA_MBPS,
        categoria="CONECTIVIDAD",
        mensaje=_VELOCIDAD_REMOTA,
    ),
    PolicyRule(
        codigo="VELOCIDAD_SUBIDA_MINIMA",
        tipo="RANGE",
        campo="speed_upload_mbps",
        minimo=VELOCIDAD_MIN_SUBIDA_MBPS,
        categoria="CONECTIVIDAD",
        mensaje=_VELOCIDAD_REMOTA,
    ),
)

# ---------------------------------------------------------------------------
# Context-scaled thresholds used by the business rule validator
# ---------------------------------------------------------------------------

RAM_POR_ATENCION = PolicyRule(
    codigo="RAM_MINIMA_ATENCION",
    tipo="BUSINESS_THRESHOLD",
    campo="ram_gb",
    contexto="atencion",
    umbrales=tuple(RAM_MINIMA_POR_ATENCION.items()),
    umbral_defecto=4,
    mensaje="RAM insuficiente: {valor}GB. Mínimo requerido para {atencion}: {minimo}GB",
)

BAJADA_POR_ATENCION = PolicyRule(
    codigo="BAJADA_MINIMA_ATENCION",
    tipo="BUSINESS_THRESHOLD",
    campo="speed_download_mbps",
    contexto="atencion",
    umbrales=tuple((k, v[0]) for k, v in CONECTIVIDAD_MINIMA_POR_ATENCION.items()),
    umbral_defecto=10,
    categoria="CONECTIVIDAD",
    mensaje="Velocidad de descarga insuficiente: {valor}Mbps. Mínimo para {atencion}: {minimo}Mbps",
)

SUBIDA_POR_ATENCION = PolicyRule(
    codigo="SUBIDA_MINIMA_ATENCION",
    tipo="BUSINESS_THRESHOLD",
    campo="speed_upload_mbps",
    contexto="atencion",
    umbrales=tuple((k, v[1]) for k, v in CONECTIVIDAD_MINIMA_POR_ATENCION.items()),
    umbral_defecto=5,
    categoria="CONECTIVIDAD",
    mensaje="Velocidad de subida insuficiente: {valor}Mbps. Mínimo para {atencion}: {minimo}Mbps",
)


def all_policy_rules() -> list[PolicyRule]:
    """Every distinct policy rule, in catalogue order."""
    rules: list[PolicyRule] = []
    for group in CPU_POLICY.values():
        rules.extend(r for r in group if r not in rules)
    for group in (RAM_POLICY, STORAGE_POLICY, OS_POLICY, SPEED_POLICY):
        rules.extend(group)
    rules.extend([RAM_POR_ATENCION, BAJADA_POR_ATENCION, SUBIDA_POR_ATENCION])
    return rules

"""
Business rule validator for normalised inventory records.

Rules are evaluated in order against the full record; each returns either
``None`` (record complies) or a finding with severity, field, message and a
suggested action.

Business rules (9 total)
------------------------
Rule 1  — ram_minima_requirement       RAM below the attention minimum    → error
          (INBOUND/OUTBOUND/EMAIL 4 GB, MIXTO/CHAT 6 GB, SOPORTE 8 GB)
Rule 2  — cpu_performance_requirement  < 2.0 GHz or single core           → warning
Rule 3  — os_compatibility             Windows 7/8/XP or missing          → error
                                       Windows 8.1                        → warning
Rule 4  — browser_compatibility        Internet Explorer                  → error
                                       below per-browser version floor    → warning
Rule 5  — antivirus_requirement        missing                            → error
                                       basic (Windows Defender)           → info
                                       definitions not up to date         → warning
Rule 6  — connectivity_requirement     below attention minimum            → error
                                       speeds not reported                → warning
Rule 7  — disk_space_requirement       < 100 GB                           → error
                                       HDD < 250 GB                       → warning
Rule 8  — headset_requirement          missing for voice attention types  → error
Rule 9  — data_completeness            usuario/proveedor/sitio/atención   → error

``score_validacion = max(0, 100 − 15 × errors − 5 × warnings)``.

A rule that raises is logged and downgraded to a warning so one faulty
predicate never hides the others.
"""

from __future__ import annotations

import logging
import re
from collections import Counter, defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from parque_etl.utils.constants import (
    ATENCIONES_CON_HEADSET,
    BROWSER_VERSION_MINIMA,
    CPU_NUCLEOS_MINIMOS,
    CPU_VELOCIDAD_MINIMA_GHZ,
    DISCO_HDD_RECOMENDADO_GB,
    DISCO_MINIMO_GB,
    OS_DEPRECADOS,
    OS_NO_SOPORTADOS,
    PENALIZACION_ADVERTENCIA,
    PENALIZACION_ERROR,
    UMBRAL_RECOMENDACION,
)
from parque_etl.validators.policy import (
    BAJADA_POR_ATENCION,
    RAM_POR_ATENCION,
    SUBIDA_POR_ATENCION,
)
from parque_etl.validators.report import (
    SEVERIDAD_ERROR,
    SEVERIDAD_INFO,
    SEVERIDAD_WARNING,
    ValidationReport,
)

logger = logging.getLogger(__name__)


def _os_pattern(nombres: list[str]) -> re.Pattern[str]:
    """Match the Windows releases in ``nombres``; "8" never matches "8.1"."""
    releases = "|".join(re.escape(n.lower().removeprefix("windows").strip()) for n in nombres)
    return re.compile(rf"windows\s*(?:{releases})(?![.\w])", re.IGNORECASE)


_OS_NO_SOPORTADO_RE = _os_pattern(OS_NO_SOPORTADOS)
_OS_DEPRECADO_RE = _os_pattern(OS_DEPRECADOS)
_LEADING_INT_RE = re.compile(r"^\s*(\d+)")

_ANTIVIRUS_BASICOS = ("Windows Defender",)
_CAMPOS_REQUERIDOS = ("usuario_id", "proveedor", "sitio", "atencion")

_RECOMENDACIONES: dict[str, dict[str, str]] = {
    "ram_minima_requirement": {
        "tipo": "hardware",
        "prioridad": "alta",
        "mensaje": "Múltiples equipos con RAM insuficiente detectados",
        "accion": "Implementar plan de upgrade masivo de memoria RAM",
    },
    "os_compatibility": {
        "tipo": "software",
        "prioridad": "crítica",
        "mensaje": "Sistemas operativos obsoletos detectados",
        "accion": "Migración urgente a sistemas operativos soportados",
    },
    "connectivity_requirement": {
        "tipo": "infraestructura",
        "prioridad": "alta",
        "mensaje": "Problemas de conectividad generalizados",
        "accion": "Revisar planes de internet y proveedores ISP",
    },
}

Outcome = dict[str, Any] | None


def _fail(
    severidad: str,
    campo: str,
    mensaje: str,
    accion: str | None = None,
    impacto: str | None = None,
) -> dict[str, Any]:
    return {
        "severidad": severidad,
        "campo": campo,
        "mensaje": mensaje,
        "accion_sugerida": accion,
        "impacto": impacto,
    }


def _blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def _os_text(record: dict[str, Any]) -> str:
    """OS as shown to users; legacy systems keep their label in ``os_version``."""
    name = record.get("os_name") or ""
    version = record.get("os_version") or ""
    if name in ("", "Otro") and version:
        return str(version)
    return f"{name} {version}".strip()


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def _rule_ram_minima(record: dict[str, Any]) -> Outcome:
    if not record.get("ram_gb") or not record.get("atencion"):
        return None
    reason = RAM_POR_ATENCION.evaluate(record)
    if reason is None:
        return None
    minimo = RAM_POR_ATENCION.umbral(record)
    return _fail(SEVERIDAD_ERROR, "ram_gb", reason, f"Upgrade de memoria a mínimo {minimo:g}GB")


def _rule_cpu_performance(record: dict[str, Any]) -> Outcome:
    speed = record.get("cpu_speed_ghz")
    if not speed:
        return None
    if speed < CPU_VELOCIDAD_MINIMA_GHZ:
        return _fail(
            SEVERIDAD_WARNING,
            "cpu_speed_ghz",
            f"CPU por debajo del rendimiento recomendado: {speed:g}GHz. "
            f"Mínimo recomendado: {CPU_VELOCIDAD_MINIMA_GHZ:.1f}GHz",
            impacto="Posible degradación de performance en aplicaciones",
        )
    cores = record.get("cpu_cores")
    if cores and cores < CPU_NUCLEOS_MINIMOS:
        return _fail(
            SEVERIDAD_WARNING,
            "cpu_cores",
            f"CPU de núcleo único detectada. Recomendado: mínimo {CPU_NUCLEOS_MINIMOS} núcleos",
            impacto="Multitarea limitada",
        )
    return None


def _rule_os_compatibility(record: dict[str, Any]) -> Outcome:
    if _blank(record.get("os_name")) and _blank(record.get("os_version")):
        return _fail(
            SEVERIDAD_ERROR,
            "os_name",
            "Sistema operativo no especificado",
            "Verificar y documentar SO instalado",
        )
    texto = _os_text(record)
    if _OS_NO_SOPORTADO_RE.search(texto):
        return _fail(
            SEVERIDAD_ERROR,
            "os_name",
            f"Sistema operativo no soportado: {texto}",
            "Actualización obligatoria a Windows 10 o superior",
        )
    if _OS_DEPRECADO_RE.search(texto):
        return _fail(
            SEVERIDAD_WARNING,
            "os_name",
            f"Sistema operativo en fase de deprecación: {texto}",
            "Planificar actualización a Windows 10 o superior",
        )
    return None


def _rule_browser_compatibility(record: dict[str, Any]) -> Outcome:
    name = record.get("browser_name")
    if _blank(name):
        return _fail(
            SEVERIDAD_WARNING,
            "browser_name",
            "Navegador no especificado",
            "Documentar navegador principal utilizado",
        )
    if name == "Internet Explorer":
        return _fail(
            SEVERIDAD_ERROR,
            "browser_name",
            "Internet Explorer no es compatible con aplicaciones modernas",
            "Migrar a Chrome, Firefox o Edge",
        )
    minima = BROWSER_VERSION_MINIMA.get(name)
    match = _LEADING_INT_RE.match(str(record.get("browser_version") or ""))
    if minima is not None and match:
        version = int(match.group(1))
        if version < minima:
            return _fail(
                SEVERIDAD_WARNING,
                "browser_version",
                f"Versión de {name} desactualizada: v{version}. Mínima recomendada: v{minima}",
                f"Actualizar {name} a la última versión",
            )
    return None


def _rule_antivirus(record: dict[str, Any]) -> Outcome:
    brand = record.get("antivirus_brand")
    if _blank(brand):
        return _fail(
            SEVERIDAD_ERROR,
            "antivirus_brand",
            "No se detectó antivirus instalado",
            "Instalar solución antivirus corporativa",
        )
    if brand in _ANTIVIRUS_BASICOS:
        return _fail(
            SEVERIDAD_INFO,
            "antivirus_brand",
            f"Antivirus básico detectado: {brand}",
            "Considerar solución antivirus empresarial",
        )
    # None means unknown, only an explicit False is stale
    if record.get("antivirus_updated") is False:
        return _fail(
            SEVERIDAD_WARNING,
            "antivirus_updated",
            "Antivirus no está actualizado",
            "Actualizar definiciones de antivirus",
        )
    return None


def _rule_connectivity(record: dict[str, Any]) -> Outcome:
    if not record.get("speed_download_mbps") or not record.get("speed_upload_mbps"):
        return _fail(
            SEVERIDAD_WARNING,
            "speed_download_mbps",
            "Velocidades de internet no especificadas",
            "Realizar test de velocidad y documentar",
        )
    for rule, sentido in ((BAJADA_POR_ATENCION, "bajada"), (SUBIDA_POR_ATENCION, "subida")):
        reason = rule.evaluate(record)
        if reason is not None:
            return _fail(
                SEVERIDAD_ERROR,
                rule.campo,
                reason,
                f"Upgrade de plan de internet a mínimo {rule.umbral(record):g}Mbps {sentido}",
            )
    return None


def _rule_disk_space(record: dict[str, Any]) -> Outcome:
    capacity = record.get("disk_capacity_gb")
    if not capacity:
        return None
    if capacity < DISCO_MINIMO_GB:
        return _fail(
            SEVERIDAD_ERROR,
            "disk_capacity_gb",
            f"Capacidad de disco insuficiente: {capacity:g}GB. Mínimo requerido: {DISCO_MINIMO_GB}GB",
            "Upgrade de almacenamiento",
        )
    if record.get("disk_type") == "HDD" and capacity < DISCO_HDD_RECOMENDADO_GB:
        return _fail(
            SEVERIDAD_WARNING,
            "disk_type",
            f"Disco mecánico con capacidad limitada: {capacity:g}GB. Recomendado: migrar a SSD",
            "Considerar migración a SSD para mejor performance",
        )
    return None


def _rule_headset(record: dict[str, Any]) -> Outcome:
    atencion = record.get("atencion")
    if atencion in ATENCIONES_CON_HEADSET and _blank(record.get("headset_brand")):
        return _fail(
            SEVERIDAD_ERROR,
            "headset_brand",
            f"Diadema/headset requerido para tipo de atención: {atencion}",
            "Proveer equipo de audio profesional",
        )
    return None


def _rule_data_completeness(record: dict[str, Any]) -> Outcome:
    faltantes = [campo for campo in _CAMPOS_REQUERIDOS if _blank(record.get(campo))]
    if faltantes:
        return _fail(
            SEVERIDAD_ERROR,
            faltantes[0],
            f"Campos requeridos faltantes: {', '.join(faltantes)}",
            "Completar información básica del registro",
        )
    return None


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BusinessRule:
    """A named predicate over a whole record.

    Attributes:
        name: Identifier used by ``skip_validation`` and in findings.
        description: Human-readable summary.
        categoria: Scoring bucket: ``hardware``, ``software``,
            ``conectividad`` or ``datos``.
        check: Callable returning ``None`` or a partial finding.
    """

    name: str
    description: str
    categoria: str
    check: Callable[[dict[str, Any]], Outcome]


DEFAULT_RULES: tuple[BusinessRule, ...] = (
    BusinessRule("ram_minima_requirement", "RAM mínima requerida según tipo de atención", "hardware", _rule_ram_minima),
    BusinessRule("cpu_performance_requirement", "Rendimiento mínimo de CPU", "hardware", _rule_cpu_performance),
    BusinessRule("os_compatibility", "Compatibilidad de sistema operativo", "software", _rule_os_compatibility),
    BusinessRule("browser_compatibility", "Compatibilidad de navegador", "software", _rule_browser_compatibility),
    BusinessRule("antivirus_requirement", "Antivirus instalado y actualizado", "software", _rule_antivirus),
    BusinessRule("connectivity_requirement", "Requisitos mínimos de conectividad", "conectividad", _rule_connectivity),
    BusinessRule("disk_space_requirement", "Espacio en disco suficiente", "hardware", _rule_disk_space),
    BusinessRule("headset_requirement", "Equipo de audio requerido", "hardware", _rule_headset),
    BusinessRule("data_completeness", "Completitud de datos básicos", "datos", _rule_data_completeness),
)


def score_from_counts(errores: int, advertencias: int) -> int:
    """``max(0, 100 − 15·errores − 5·advertencias)``."""
    return max(0, 100 - PENALIZACION_ERROR * errores - PENALIZACION_ADVERTENCIA * advertencias)


class BusinessRulesValidator:
    """Apply ``DEFAULT_RULES`` (or a custom list) to records."""

    def __init__(self, rules: Iterable[BusinessRule] | None = None) -> None:
        self.rules: list[BusinessRule] = list(rules if rules is not None else DEFAULT_RULES)

    def get_rules_info(self) -> list[dict[str, str]]:
        return [
            {"name": r.name, "description": r.description, "categoria": r.categoria}
            for r in self.rules
        ]

    def validate(
        self,
        record: dict[str, Any],
        skip_validation: Iterable[str] = (),
    ) -> ValidationReport:
        """Run every rule not listed in ``skip_validation``.

        Args:
            record: Normalised record.
            skip_validation: Rule names to skip.

        Returns:
            ``ValidationReport`` with findings bucketed by severity and
            ``score_validacion`` set.
        """
        skip = set(skip_validation)
        report = ValidationReport()

        for rule in self.rules:
            if rule.name in skip:
                continue
            try:
                outcome = rule.check(record)
            except Exception as exc:
                logger.exception("BusinessRulesValidator: error ejecutando regla %s", rule.name)
                report.advertencias.append({
                    "regla": rule.name,
                    "descripcion": "Error en validación",
                    "categoria": rule.categoria,
                    "campo": None,
                    "mensaje": f"Error interno validando: {exc}",
                    "severidad": SEVERIDAD_WARNING,
                })
                continue
            if outcome is None:
                continue
            report.add({
                "regla": rule.name,
                "descripcion": rule.description,
                "categoria": rule.categoria,
                **outcome,
            })

        report.score_validacion = score_from_counts(len(report.errores), len(report.advertencias))
        return report

    def validate_batch(
        self,
        records: list[dict[str, Any]],
        skip_validation: Iterable[str] = (),
    ) -> dict[str, Any]:
        """Validate every record and aggregate findings plus the mean score."""
        skip = tuple(skip_validation)
        resultados: dict[str, Any] = {
            "errores": [],
            "advertencias": [],
            "informacion": [],
            "errores_por_registro": {},
            "advertencias_por_registro": {},
            "score_promedio": 0,
        }
        score_total = 0

        for i, record in enumerate(records):
            record_id = str(record.get("temp_id") or record.get("usuario_id") or f"registro_{i}")
            report = self.validate(record, skip_validation=skip)

            resultados["errores"].extend(report.errores)
            resultados["advertencias"].extend(report.advertencias)
            resultados["informacion"].extend(report.informacion)
            if report.errores:
                resultados["errores_por_registro"].setdefault(record_id, []).extend(report.errores)
            if report.advertencias:
                resultados["advertencias_por_registro"].setdefault(record_id, []).extend(report.advertencias)
            score_total += report.score_validacion or 0

        if records:
            resultados["score_promedio"] = round(score_total / len(records))
        return resultados

    def generar_reporte(self, resultados: dict[str, Any]) -> dict[str, Any]:
        """Group batch findings by rule and field and add recommendations."""
        errores_por_regla: dict[str, list[dict[str, Any]]] = defaultdict(list)
        advertencias_por_regla: dict[str, list[dict[str, Any]]] = defaultdict(list)
        campos: dict[str, int] = defaultdict(int)

        for error in resultados["errores"]:
            errores_por_regla[error.get("regla")].append(error)
        for advertencia in resultados["advertencias"]:
            advertencias_por_regla[advertencia.get("regla")].append(advertencia)
        for item in resultados["errores"] + resultados["advertencias"]:
            if item.get("campo"):
                campos[item["campo"]] += 1

        por_regla = Counter(
            item.get("regla") for item in resultados["errores"] + resultados["advertencias"]
        )
        problemas_frecuentes = [
            {"regla": regla, "frecuencia": n} for regla, n in por_regla.most_common(10)
        ]

        recomendaciones = [
            dict(_RECOMENDACIONES[regla], frecuencia=len(items))
            for regla, items in errores_por_regla.items()
            if regla in _RECOMENDACIONES and len(items) >= UMBRAL_RECOMENDACION
        ]

        return {
            "resumen": {
                "total_errores": len(resultados["errores"]),
                "total_advertencias": len(resultados["advertencias"]),
                "total_informacion": len(resultados["informacion"]),
                "score_promedio": resultados.get("score_promedio", 0),
            },
            "errores_por_regla": dict(errores_por_regla),
            "advertencias_por_regla": dict(advertencias_por_regla),
            "campos_problematicos": dict(sorted(campos.items(), key=lambda kv: kv[1], reverse=True)),
            "problemas_frecuentes": problemas_frecuentes,
            "recomendaciones": recomendaciones,
        }

"""Declarative schema checks for normalised inventory records.

``SCHEMA`` lists, for every record field, whether it is required, its
primitive type and the length / range / enum / pattern constraints.
``SchemaValidator.validate`` walks the schema and reports findings without
mutating the record:

=====================  ==========================================
Check                  Severity
=====================  ==========================================
required missing       error
type mismatch          warning (error with ``strict_mode``)
max length             warning
min / max value        error
enum membership        warning
pattern                error
=====================  ==========================================
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from parque_etl.utils.constants import (
    BROWSER_NAMES,
    CONNECTION_TYPES,
    CPU_BRANDS,
    DISK_TYPES,
    ESTADOS_ETL_REGISTRO,
    HEADSET_TYPES,
    OS_ARCHITECTURES,
    OS_NAMES,
    RAM_TYPES,
    TIPOS_ATENCION,
)
from parque_etl.validators.report import (
    SEVERIDAD_ERROR,
    SEVERIDAD_WARNING,
    ValidationReport,
    finding,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldSpec:
    """Constraints for one record field."""

    tipo: str
    required: bool = False
    max_length: int | None = None
    minimo: float | None = None
    maximo: float | None = None
    valores: tuple[str, ...] = ()
    patron: str | None = None


SCHEMA: dict[str, FieldSpec] = {
    # Metadatos
    "audit_id": FieldSpec("string", required=True, max_length=50),
    "audit_date": FieldSpec("date", required=True),
    "audit_cycle": FieldSpec("string", required=True, patron=r"^\d{4}-S[12]$"),
    "audit_version": FieldSpec("string", required=True, max_length=20),
    # Identificación
    "proveedor": FieldSpec("string", required=True, max_length=255),
    "sitio": FieldSpec("string", required=True, max_length=100),
    "atencion": FieldSpec("enum", required=True, valores=tuple(TIPOS_ATENCION)),
    "usuario_id": FieldSpec("string", required=True, max_length=50),
    "hostname": FieldSpec("string", max_length=100),
    # Hardware - CPU
    "cpu_brand": FieldSpec("enum", valores=tuple(CPU_BRANDS)),
    "cpu_model": FieldSpec("string", max_length=200),
    "cpu_speed_ghz": FieldSpec("decimal", minimo=0.5, maximo=10.0),
    "cpu_cores": FieldSpec("integer", minimo=1, maximo=64),
    # Hardware - Memoria
    "ram_gb": FieldSpec("integer", minimo=1, maximo=1024),
    "ram_type": FieldSpec("enum", valores=tuple(RAM_TYPES)),
    # Hardware - Almacenamiento
    "disk_type": FieldSpec("enum", valores=tuple(DISK_TYPES)),
    "disk_capacity_gb": FieldSpec("integer", minimo=16, maximo=10000),
    "disk_free_gb": FieldSpec("integer", minimo=0, maximo=10000),
    # Software - OS
    "os_name": FieldSpec("enum", valores=tuple(OS_NAMES)),
    "os_version": FieldSpec("string", max_length=50),
    "os_build": FieldSpec("string", max_length=50),
    "os_architecture": FieldSpec("enum", valores=(*OS_ARCHITECTURES, "Otro")),
    # Software - Navegador
    "browser_name": FieldSpec("enum", valores=tuple(BROWSER_NAMES)),
    "browser_version": FieldSpec("string", max_length=50),
    # Software - Antivirus
    "antivirus_brand": FieldSpec("string", max_length=100),
    "antivirus_version": FieldSpec("string", max_length=50),
    "antivirus_updated": FieldSpec("boolean"),
    # Periféricos
    "headset_brand": FieldSpec("string", max_length=100),
    "headset_model": FieldSpec("string", max_length=100),
    "headset_type": FieldSpec("enum", valores=tuple(HEADSET_TYPES)),
    "webcam_available": FieldSpec("boolean"),
    # Conectividad
    "isp_name": FieldSpec("string", max_length=100),
    "connection_type": FieldSpec("enum", valores=tuple(CONNECTION_TYPES)),
    "speed_download_mbps": FieldSpec("decimal", minimo=1, maximo=10000),
    "speed_upload_mbps": FieldSpec("decimal", minimo=1, maximo=10000),
    "latency_ms": FieldSpec("integer", minimo=0, maximo=10000),
    # ETL
    "estado_etl": FieldSpec("enum", valores=tuple(ESTADOS_ETL_REGISTRO)),
}


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _type_error(campo: str, tipo: str, value: Any) -> str | None:
    """Mismatch message for ``value`` against ``tipo``, ``None`` when it fits."""
    if tipo == "string":
        if not isinstance(value, str):
            return f"Se esperaba string, recibido: {type(value).__name__}"
    elif tipo == "integer":
        try:
            ok = not isinstance(value, bool) and float(value) == int(float(value))
        except (TypeError, ValueError, OverflowError):
            ok = False
        if not ok:
            return f"Se esperaba entero, recibido: {value}"
    elif tipo == "decimal":
        try:
            ok = not isinstance(value, bool) and float(value) == float(value)
        except (TypeError, ValueError):
            ok = False
        if not ok:
            return f"Se esperaba número decimal, recibido: {value}"
    elif tipo == "boolean":
        if not isinstance(value, bool):
            return f"Se esperaba booleano, recibido: {type(value).__name__}"
    elif tipo == "date":
        if not isinstance(value, (date, datetime)):
            try:
                date.fromisoformat(str(value)[:10])
            except ValueError:
                return f"Se esperaba fecha válida, recibido: {value}"
    elif tipo != "enum":
        raise ValueError(f"Tipo de dato desconocido para {campo}: {tipo}")
    return None


class SchemaValidator:
    """Validate records against ``SCHEMA``.

    Args:
        schema: Override for tests or per-client schemas.
    """

    def __init__(self, schema: dict[str, FieldSpec] | None = None) -> None:
        self.schema = dict(schema if schema is not None else SCHEMA)

    # ------------------------------------------------------------------
    # Single record
    # ------------------------------------------------------------------

    def validate(self, record: dict[str, Any], strict_mode: bool = False) -> ValidationReport:
        """Check every schema field of ``record``.

        A field whose check raises yields an ``error`` finding of type
        ``validation_error``; the remaining fields are still checked.
        """
        report = ValidationReport()
        for campo, spec in self.schema.items():
            try:
                report.extend(self.validate_field(campo, record.get(campo), spec, strict_mode))
            except Exception as exc:
                logger.exception("SchemaValidator: campo %s", campo)
                report.errores.append(
                    finding(campo, "validation_error", f"Error validando campo: {exc}", SEVERIDAD_ERROR)
                )
        return report

    def validate_field(
        self,
        campo: str,
        value: Any,
        spec: FieldSpec,
        strict_mode: bool = False,
    ) -> ValidationReport:
        report = ValidationReport()

        if _is_empty(value):
            if spec.required:
                report.errores.append(
                    finding(campo, "required", f"Campo requerido: {campo}", SEVERIDAD_ERROR)
                )
            return report

        mismatch = _type_error(campo, spec.tipo, value)
        if mismatch:
            severidad = SEVERIDAD_ERROR if strict_mode else SEVERIDAD_WARNING
            report.add(finding(campo, "type_mismatch", mismatch, severidad))

        if spec.max_length is not None and len(str(value)) > spec.max_length:
            report.advertencias.append(
                finding(
                    campo,
                    "max_length",
                    f"Valor excede longitud máxima ({spec.max_length}): {len(str(value))} caracteres",
                    SEVERIDAD_WARNING,
                )
            )

        if spec.minimo is not None and _is_number(value) and value < spec.minimo:
            report.errores.append(
                finding(
                    campo,
                    "min_value",
                    f"Valor menor al mínimo permitido ({spec.minimo:g}): {value}",
                    SEVERIDAD_ERROR,
                )
            )
        if spec.maximo is not None and _is_number(value) and value > spec.maximo:
            report.errores.append(
                finding(
                    campo,
                    "max_value",
                    f"Valor mayor al máximo permitido ({spec.maximo:g}): {value}",
                    SEVERIDAD_ERROR,
                )
            )

        if spec.tipo == "enum" and spec.valores and value not in spec.valores:
            report.advertencias.append(
                finding(
                    campo,
                    "invalid_enum",
                    f'Valor no válido para {campo}: "{value}". '
                    f"Valores permitidos: {', '.join(spec.valores)}",
                    SEVERIDAD_WARNING,
                    valores_permitidos=list(spec.valores),
                )
            )

        if spec.patron and isinstance(value, str) and not re.match(spec.patron, value):
            report.errores.append(
                finding(campo, "pattern_mismatch", f'Formato inválido para {campo}: "{value}"', SEVERIDAD_ERROR)
            )

        return report

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def validate_batch(
        self,
        records: list[dict[str, Any]],
        strict_mode: bool = False,
    ) -> dict[str, Any]:
        """Validate every record and aggregate statistics.

        Returns:
            Dict with ``errores_globales``, ``advertencias_globales``,
            ``validaciones_por_registro`` (record id -> report dict) and
            ``estadisticas`` (total / válidos / con errores / con advertencias).
        """
        resultados: dict[str, Any] = {
            "errores_globales": [],
            "advertencias_globales": [],
            "validaciones_por_registro": {},
            "estadisticas": {
                "total_registros": len(records),
                "registros_validos": 0,
                "registros_con_errores": 0,
                "registros_con_advertencias": 0,
            },
        }
        stats = resultados["estadisticas"]

        for i, record in enumerate(records):
            record_id = str(record.get("temp_id") or record.get("usuario_id") or f"registro_{i}")
            if record_id in resultados["validaciones_por_registro"]:
                record_id = f"{record_id}#{i}"

            report = self.validate(record, strict_mode=strict_mode)
            resultados["validaciones_por_registro"][record_id] = report.as_dict()

            if not report.errores and not report.advertencias:
                stats["registros_validos"] += 1
            elif report.errores:
                stats["registros_con_errores"] += 1
            else:
                stats["registros_con_advertencias"] += 1

            resultados["errores_globales"].extend(report.errores)
            resultados["advertencias_globales"].extend(report.advertencias)

        logger.info(
            "SchemaValidator.validate_batch: total=%d validos=%d errores=%d advertencias=%d",
            stats["total_registros"],
            stats["registros_validos"],
            stats["registros_con_errores"],
            stats["registros_con_advertencias"],
        )
        return resultados

    # ------------------------------------------------------------------
    # Quality report
    # ------------------------------------------------------------------

    @staticmethod
    def calcular_score_calidad(estadisticas: dict[str, int]) -> int:
        """Valid records count fully, warning-only records at half weight."""
        total = estadisticas.get("total_registros", 0)
        if total == 0:
            return 0
        validos = estadisticas.get("registros_validos", 0) / total * 100
        con_advertencias = estadisticas.get("registros_con_advertencias", 0) / total * 50
        return round(validos + con_advertencias)

    def generar_reporte_calidad(self, resultados: dict[str, Any]) -> dict[str, Any]:
        """Summarise a ``validate_batch`` result into a data-quality report."""
        stats = resultados["estadisticas"]
        total = stats["total_registros"]
        errores = resultados["errores_globales"]
        advertencias = resultados["advertencias_globales"]

        reporte: dict[str, Any] = {
            "resumen": {
                "score_calidad": self.calcular_score_calidad(stats),
                "total_errores": len(errores),
                "total_advertencias": len(advertencias),
                "porcentaje_registros_validos": (
                    round(stats["registros_validos"] / total * 100) if total else 0
                ),
            },
            "problemas_frecuentes": self._problemas_frecuentes(errores),
            "campos_problematicos": self._campos_problematicos(errores + advertencias),
        }
        reporte["recomendaciones"] = self._recomendaciones(reporte)
        return reporte

    @staticmethod
    def _problemas_frecuentes(errores: list[dict[str, Any]], top: int = 10) -> list[dict[str, Any]]:
        conteo: dict[tuple[str, str], dict[str, Any]] = {}
        for error in errores:
            key = (error.get("tipo"), error.get("campo"))
            if key not in conteo:
                conteo[key] = {
                    "tipo": error.get("tipo"),
                    "campo": error.get("campo"),
                    "descripcion": error.get("mensaje"),
                    "frecuencia": 0,
                }
            conteo[key]["frecuencia"] += 1
        return sorted(conteo.values(), key=lambda p: p["frecuencia"], reverse=True)[:top]

    @staticmethod
    def _campos_problematicos(problemas: list[dict[str, Any]], top: int = 10) -> list[dict[str, Any]]:
        conteo = Counter(p["campo"] for p in problemas if p.get("campo"))
        return [{"campo": campo, "frecuencia": n} for campo, n in conteo.most_common(top)]

    @staticmethod
    def _recomendaciones(reporte: dict[str, Any]) -> list[dict[str, str]]:
        recomendaciones: list[dict[str, str]] = []

        if reporte["resumen"]["score_calidad"] < 70:
            recomendaciones.append({
                "tipo": "calidad_datos",
                "prioridad": "alta",
                "mensaje": "Score de calidad de datos bajo detectado",
                "accion": "Revisar procesos de captura y validación de datos",
            })

        for problema in reporte["problemas_frecuentes"]:
            if problema["frecuencia"] > 10:
                recomendaciones.append({
                    "tipo": "problema_frecuente",
                    "prioridad": "media",
                    "mensaje": f"Problema recurrente en campo {problema['campo']}: {problema['tipo']}",
                    "accion": f"Implementar validación automática para {problema['campo']}",
                })

        for campo in reporte["campos_problematicos"]:
            if campo["frecuencia"] > 15:
                recomendaciones.append({
                    "tipo": "campo_problematico",
                    "prioridad": "media",
                    "mensaje": f"Campo {campo['campo']} presenta múltiples problemas",
                    "accion": f"Revisar definición y captura del campo {campo['campo']}",
                })

        return recomendaciones

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_schema_info(self) -> dict[str, Any]:
        tipos = Counter(spec.tipo for spec in self.schema.values())
        return {
            "total_campos": len(self.schema),
            "campos_requeridos": [c for c, s in self.schema.items() if s.required],
            "campos_opcionales": [c for c, s in self.schema.items() if not s.required],
            "tipos_de_datos": dict(tipos),
            "campos_enum": {c: list(s.valores) for c, s in self.schema.items() if s.tipo == "enum"},
        }

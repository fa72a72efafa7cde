"""
Row processor: one spreadsheet row in, one annotated inventory record out.

Stages, in order::

    column mapping → normalizers → component compliance → schema validator
                   → business rules → scoring

The processor never raises.  A missing or unparsable processor cell, or any
exception thrown by a stage, marks the record ``ERROR`` with a row-scoped
entry in ``errores_validacion`` and the batch moves on to the next row.

Entries in ``errores_validacion`` / ``advertencias`` carry the fields the
job tracker needs to file them in the error ledger: ``campo``, ``mensaje``,
``tipo`` (ETLError tipo), ``codigo``, ``severidad``, ``paso`` and
``valor_original``.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any

from parque_etl.config import get_settings
from parque_etl.normalizers.base import clean_text, round_half_up, to_float
from parque_etl.normalizers.categorical import (
    extract_version,
    normalize_antivirus,
    normalize_atencion,
    normalize_boolean,
    normalize_browser_name,
    normalize_connection_type,
    normalize_headset_type,
    normalize_hostname,
    normalize_id,
    normalize_integer,
    normalize_os,
    normalize_speed_mbps,
    normalize_string,
)
from parque_etl.normalizers.memory import normalize_ram
from parque_etl.normalizers.processor import normalize_processor
from parque_etl.normalizers.storage import normalize_storage
from parque_etl.parsers.column_mapper import ColumnMapping
from parque_etl.services.scoring import aplicar_scores
from parque_etl.utils.constants import CPU_BRANDS
from parque_etl.validators.business_rules import BusinessRulesValidator
from parque_etl.validators.policy import SPEED_POLICY, evaluate_policy
from parque_etl.validators.schema_validator import SchemaValidator

logger = logging.getLogger(__name__)

SIN_ESPECIFICAR = "No especificado"

# Identity cells; a row with a processor but none of these is INCOMPLETO
_CAMPOS_IDENTIDAD = ("proveedor", "sitio", "atencion", "usuario_id", "hostname")

# Component verdict flag -> failure reason field, in overall-reason order
_COMPONENTES: tuple[tuple[str, str], ...] = (
    ("cpu_meets_requirements", "cpu_failure_reason"),
    ("ram_meets_requirements", "ram_failure_reason"),
    ("disk_meets_requirements", "disk_failure_reason"),
    ("os_meets_requirements", "os_failure_reason"),
    ("speed_meets_requirements", "speed_failure_reason"),
)

_CORES_RE = re.compile(r"(\d{1,2})\s*(?:cores?|núcleos|nucleos)\b", re.IGNORECASE)
_CORES_WORDS: dict[str, int] = {"single": 1, "dual": 2, "quad": 4, "hexa": 6, "octa": 8}
_CORES_WORD_RE = re.compile(r"\b(single|dual|quad|hexa|octa)[\s-]*core\b", re.IGNORECASE)
_FREE_TB_RE = re.compile(r"(\d+(?:[.,]\d+)?)\s*(?:tb|terabytes?)\b", re.IGNORECASE)

_default_schema = SchemaValidator()
_default_rules = BusinessRulesValidator()


# ---------------------------------------------------------------------------
# Audit metadata
# ---------------------------------------------------------------------------


def _as_date(value: Any) -> date | None:
    if isinstance(value, date) or value is None:
        return value
    return date.fromisoformat(str(value)[:10])


def generate_audit_cycle(today: date | None = None) -> str:
    """``YYYY-S1`` for January-June, ``YYYY-S2`` otherwise."""
    today = today or date.today()
    return f"{today.year}-{'S1' if today.month <= 6 else 'S2'}"


def build_audit(audit: Mapping[str, Any] | None = None, today: date | None = None) -> dict[str, Any]:
    """Fill in the audit metadata the caller did not supply."""
    audit = dict(audit or {})
    today = today or date.today()
    return {
        "audit_id": audit.get("audit_id") or f"AUDIT_{today:%Y%m%d}",
        "audit_date": _as_date(audit.get("audit_date")) or today,
        "audit_cycle": audit.get("audit_cycle") or generate_audit_cycle(today),
        "audit_version": str(audit.get("audit_version") or 1),
    }


# ---------------------------------------------------------------------------
# Entry helpers
# ---------------------------------------------------------------------------


def _entrada(
    campo: str | None,
    mensaje: str,
    tipo: str,
    paso: str,
    severidad: str = "ERROR",
    codigo: str | None = None,
    valor_original: Any = None,
    **extra: Any,
) -> dict[str, Any]:
    entry = {
        "campo": campo,
        "mensaje": mensaje,
        "tipo": tipo,
        "codigo": codigo,
        "severidad": severidad,
        "paso": paso,
        "valor_original": None if valor_original is None else str(valor_original),
    }
    entry.update({k: v for k, v in extra.items() if v is not None})
    return entry


def _desde_hallazgo(
    item: dict[str, Any],
    tipo: str,
    paso: str,
    severidad: str,
    record: dict[str, Any],
) -> dict[str, Any]:
    campo = item.get("campo")
    return _entrada(
        campo,
        item.get("mensaje", ""),
        tipo,
        paso,
        severidad=severidad,
        codigo=(item.get("regla") or item.get("tipo") or "").upper() or None,
        valor_original=record.get(campo) if campo else None,
        accion_sugerida=item.get("accion_sugerida"),
        categoria=item.get("categoria"),
    )


def marcar_error_fila(
    record: dict[str, Any],
    mensaje: str,
    tipo: str = "SYSTEM",
    paso: str = "NORMALIZATION",
    **kwargs: Any,
) -> None:
    """Attach a row-scoped error and move the record to ERROR."""
    record["errores_validacion"] = [
        *record.get("errores_validacion", []),
        _entrada(kwargs.pop("campo", None), mensaje, tipo, paso, **kwargs),
    ]
    record["estado_etl"] = "ERROR"


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


def _detect_cores(text: str) -> int | None:
    match = _CORES_RE.search(text)
    if match:
        return normalize_integer(match.group(1), minimo=1, maximo=64)
    match = _CORES_WORD_RE.search(text)
    if match:
        return _CORES_WORDS[match.group(1).lower()]
    return None


def _espacio_libre_gb(value: Any) -> int | None:
    match = _FREE_TB_RE.search(clean_text(value))
    if match:
        return int(round_half_up(to_float(match.group(1)) * 1000))
    return normalize_integer(value, minimo=0)


def _normalizar_identidad(
    record: dict[str, Any], row: Mapping[str, Any], mapping: ColumnMapping, index: int
) -> None:
    record["proveedor"] = normalize_string(mapping.value(row, "proveedor"), max_length=255) or SIN_ESPECIFICAR
    record["sitio"] = normalize_string(mapping.value(row, "sitio"), max_length=100) or SIN_ESPECIFICAR
    record["atencion"] = normalize_atencion(mapping.value(row, "atencion"))
    record["usuario_id"] = normalize_id(mapping.value(row, "usuario_id")) or f"USER_{index + 1}"
    record["hostname"] = normalize_hostname(mapping.value(row, "hostname")) or f"PC_{index + 1}"


def _normalizar_cpu(record: dict[str, Any], raw: Any) -> None:
    cpu = normalize_processor(raw)
    record["cpu_brand"] = cpu.brand if cpu.brand in CPU_BRANDS else "Otro"
    record["cpu_model"] = cpu.model
    record["cpu_model_number"] = cpu.model_number
    record["cpu_generation"] = cpu.generation
    record["cpu_architecture"] = cpu.architecture
    record["cpu_speed_ghz"] = cpu.speed_value or None
    record["cpu_cores"] = _detect_cores(cpu.original)
    record["cpu_normalized"] = cpu.normalized
    record["cpu_meets_requirements"] = cpu.meets_requirements
    record["cpu_failure_reason"] = cpu.reason

    if not cpu.original:
        marcar_error_fila(
            record,
            "Celda de procesador vacía o ilegible",
            tipo="NORMALIZATION",
            campo="processor",
            codigo="PROCESADOR_INVALIDO",
        )
    elif cpu.error:
        marcar_error_fila(
            record,
            f"No se pudo normalizar el procesador: {cpu.error}",
            tipo="NORMALIZATION",
            campo="processor",
            codigo="PROCESADOR_INVALIDO",
            valor_original=cpu.original,
        )


def _normalizar_hardware(record: dict[str, Any], row: Mapping[str, Any], mapping: ColumnMapping) -> None:
    raw_ram = mapping.value(row, "ram")
    if clean_text(raw_ram):
        ram = normalize_ram(raw_ram)
        record["ram_gb"] = ram.capacity_gb or None
        record["ram_type"] = ram.type
        record["ram_speed_mhz"] = ram.speed_mhz
        record["ram_normalized"] = ram.normalized
        record["ram_meets_requirements"] = ram.meets_requirements
        record["ram_failure_reason"] = ram.reason
        if ram.error:
            marcar_error_fila(
                record,
                f"No se pudo normalizar la RAM: {ram.error}",
                tipo="NORMALIZATION",
                campo="ram_gb",
                valor_original=raw_ram,
            )
    else:
        # Unreported components do not fail compliance
        record["ram_meets_requirements"] = True
        record["ram_failure_reason"] = ""

    raw_disk = mapping.value(row, "storage")
    if clean_text(raw_disk):
        disk = normalize_storage(raw_disk)
        record["disk_type"] = disk.type
        record["disk_capacity_gb"] = disk.capacity_gb or None
        record["disk_normalized"] = disk.normalized
        record["disk_meets_requirements"] = disk.meets_requirements
        record["disk_failure_reason"] = disk.reason
        if disk.error:
            marcar_error_fila(
                record,
                f"No se pudo normalizar el disco: {disk.error}",
                tipo="NORMALIZATION",
                campo="disk_capacity_gb",
                valor_original=raw_disk,
            )
    else:
        record["disk_meets_requirements"] = True
        record["disk_failure_reason"] = ""
    record["disk_free_gb"] = _espacio_libre_gb(mapping.value(row, "disk_free"))


def _normalizar_software(record: dict[str, Any], row: Mapping[str, Any], mapping: ColumnMapping) -> None:
    so = normalize_os(mapping.value(row, "os"))
    record["os_name"] = so.name
    record["os_version"] = so.version
    record["os_architecture"] = so.architecture
    record["os_meets_requirements"] = so.meets_requirements
    record["os_failure_reason"] = so.reason
    record["os_build"] = normalize_string(mapping.value(row, "os_build"), max_length=50)

    raw_browser = mapping.value(row, "browser")
    record["browser_name"] = normalize_browser_name(raw_browser)
    record["browser_version"] = extract_version(raw_browser)

    raw_av = mapping.value(row, "antivirus")
    record["antivirus_brand"] = normalize_antivirus(raw_av)
    record["antivirus_version"] = extract_version(raw_av)
    record["antivirus_updated"] = normalize_boolean(mapping.value(row, "antivirus_updated"))

    raw_headset = mapping.value(row, "headset")
    record["headset_brand"] = normalize_string(raw_headset, capitalize=True, max_length=100)
    record["headset_type"] = normalize_headset_type(raw_headset)
    record["headset_model"] = normalize_string(mapping.value(row, "headset_model"), max_length=100)
    record["webcam_available"] = normalize_boolean(mapping.value(row, "webcam"))


def _normalizar_conectividad(record: dict[str, Any], row: Mapping[str, Any], mapping: ColumnMapping) -> None:
    record["isp_name"] = normalize_string(mapping.value(row, "isp"), max_length=100)
    record["connection_type"] = normalize_connection_type(mapping.value(row, "connection_type"))
    record["speed_download_mbps"] = normalize_speed_mbps(mapping.value(row, "speed_down"))
    record["speed_upload_mbps"] = normalize_speed_mbps(mapping.value(row, "speed_up"))
    record["latency_ms"] = normalize_integer(mapping.value(row, "latency"), minimo=0)

    if record["speed_download_mbps"] is None and record["speed_upload_mbps"] is None:
        meets, reason = True, ""
    else:
        meets, reason = evaluate_policy(SPEED_POLICY, record)
    record["speed_meets_requirements"] = meets
    record["speed_failure_reason"] = reason


def aplicar_cumplimiento(record: dict[str, Any]) -> dict[str, Any]:
    """Set ``overall_compliance`` (AND of the five verdicts) and its reason."""
    razones = [
        record.get(razon) or "Requisito no cumplido"
        for flag, razon in _COMPONENTES
        if record.get(flag) is not True
    ]
    record["overall_compliance"] = not razones
    record["overall_failure_reason"] = "; ".join(razones)
    return record


def _validar(
    record: dict[str, Any],
    schema_validator: SchemaValidator,
    rules_validator: BusinessRulesValidator,
    strict_mode: bool,
    skip_validation: Iterable[str],
) -> None:
    esquema = schema_validator.validate(record, strict_mode=strict_mode)
    negocio = rules_validator.validate(record, skip_validation=skip_validation)

    errores = [_desde_hallazgo(e, "VALIDATION", "VALIDATION", "ERROR", record) for e in esquema.errores]
    errores += [_desde_hallazgo(e, "BUSINESS_RULE", "VALIDATION", "ERROR", record) for e in negocio.errores]
    advertencias = [_desde_hallazgo(w, "VALIDATION", "VALIDATION", "WARNING", record) for w in esquema.advertencias]
    advertencias += [_desde_hallazgo(w, "BUSINESS_RULE", "VALIDATION", "WARNING", record) for w in negocio.advertencias]

    record["errores_validacion"] = [*record.get("errores_validacion", []), *errores]
    record["advertencias"] = [*record.get("advertencias", []), *advertencias]
    record["informacion"] = list(negocio.informacion)
    record["score_validacion"] = negocio.score_validacion

    aplicar_scores(record, negocio.errores, negocio.advertencias)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def process_row(
    row: Mapping[str, Any],
    mapping: ColumnMapping,
    audit: Mapping[str, Any] | None,
    index: int,
    *,
    fila: int | None = None,
    strict_mode: bool | None = None,
    skip_validation: Iterable[str] = (),
    schema_validator: SchemaValidator | None = None,
    rules_validator: BusinessRulesValidator | None = None,
) -> dict[str, Any]:
    """Normalise, validate and score one row.

    Args:
        row: Raw ``{header: cell}`` mapping.
        mapping: Column mapping of the sheet (read-only, shared by workers).
        audit: ``audit_id`` / ``audit_date`` / ``audit_cycle`` / ``audit_version``;
            missing keys get defaults.
        index: 0-based position of the row in the batch (default ids).
        fila: 1-based spreadsheet row; defaults to ``index + 1``.
        strict_mode: Type mismatches become errors; defaults to
            ``ETL_STRICT_MODE``.
        skip_validation: Business rule names to skip.

    Returns:
        The record dict.  ``estado_etl`` is VALIDADO, ERROR or INCOMPLETO.
    """
    settings = get_settings()
    if strict_mode is None:
        strict_mode = settings.ETL_STRICT_MODE

    record: dict[str, Any] = {
        **build_audit(audit),
        "estado_etl": "PROCESANDO",
        "datos_originales": {str(k): (None if v is None else str(v)) for k, v in row.items()},
        "errores_validacion": [],
        "advertencias": [],
        "fila_archivo": fila if fila is not None else index + 1,
        "version_etl": settings.VERSION_ETL,
    }

    try:
        _normalizar_identidad(record, row, mapping, index)
        _normalizar_cpu(record, mapping.value(row, "processor"))
        _normalizar_hardware(record, row, mapping)
        _normalizar_software(record, row, mapping)
        _normalizar_conectividad(record, row, mapping)
        aplicar_cumplimiento(record)
        _validar(
            record,
            schema_validator or _default_schema,
            rules_validator or _default_rules,
            strict_mode,
            skip_validation,
        )
    except Exception as exc:
        logger.exception("process_row: fila %s falló", record["fila_archivo"])
        record.setdefault("overall_compliance", False)
        record.setdefault("overall_failure_reason", "Error en procesamiento")
        marcar_error_fila(record, f"Error inesperado procesando la fila: {exc}", tipo="SYSTEM")
        return record

    if record["estado_etl"] == "ERROR":
        logger.warning("process_row: fila %s marcada ERROR", record["fila_archivo"])
    elif all(not clean_text(mapping.value(row, campo)) for campo in _CAMPOS_IDENTIDAD):
        record["estado_etl"] = "INCOMPLETO"
    elif record["errores_validacion"]:
        record["estado_etl"] = "ERROR"
    else:
        record["estado_etl"] = "VALIDADO"

    logger.debug(
        "process_row: fila %s estado=%s score=%s",
        record["fila_archivo"], record["estado_etl"], record.get("score_total"),
    )
    return record


def generate_statistics(records: list[dict[str, Any]]) -> dict[str, Any]:
    """Batch statistics over processed records.

    Returns:
        Dict shaped like ``schemas.etl.EstadisticasLote``.
    """
    total = len(records)
    cumplen = sum(1 for r in records if r.get("overall_compliance"))
    con_error = sum(1 for r in records if r.get("estado_etl") == "ERROR")

    def _porcentaje(n: int) -> float:
        return round(n / total * 100, 1) if total else 0.0

    def _promedio(campo: str) -> float | None:
        valores = [r[campo] for r in records if r.get(campo)]
        return round(sum(valores) / len(valores), 2) if valores else None

    razones: Counter[str] = Counter()
    for r in records:
        if not r.get("overall_compliance") and r.get("overall_failure_reason"):
            razones.update(x.strip() for x in r["overall_failure_reason"].split(";") if x.strip())

    componentes = {
        nombre: _porcentaje(sum(1 for r in records if r.get(flag)))
        for nombre, flag in (
            ("cpu", "cpu_meets_requirements"),
            ("ram", "ram_meets_requirements"),
            ("storage", "disk_meets_requirements"),
            ("os", "os_meets_requirements"),
            ("speed", "speed_meets_requirements"),
        )
    }

    return {
        "total_registros": total,
        "registros_cumplen": cumplen,
        "registros_no_cumplen": total - cumplen,
        "registros_con_error": con_error,
        "tasa_cumplimiento": _porcentaje(cumplen),
        "distribucion_nivel": dict(Counter(r["nivel_cumplimiento"] for r in records if r.get("nivel_cumplimiento"))),
        "distribucion_cpu": dict(
            Counter(f"{r['cpu_brand']} {r.get('cpu_model') or ''}".strip() for r in records if r.get("cpu_brand"))
        ),
        "distribucion_ram": dict(Counter(f"{r['ram_gb']} GB" for r in records if r.get("ram_gb"))),
        "distribucion_disco": dict(Counter(r["disk_type"] for r in records if r.get("disk_type"))),
        "distribucion_os": dict(Counter(r["os_name"] for r in records if r.get("os_name"))),
        "cumplimiento_componentes": componentes,
        "promedios": {
            "ram_gb": _promedio("ram_gb"),
            "disk_capacity_gb": _promedio("disk_capacity_gb"),
            "score_total": _promedio("score_total"),
        },
        "razones_fallo": dict(razones.most_common()),
        "por_atencion": dict(Counter(r["atencion"] for r in records if r.get("atencion"))),
    }

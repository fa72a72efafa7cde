"""
ETL orchestrator: one inventory file in, persisted ``ParqueInformatico`` rows out.

Pipeline of ``procesar_archivo``::

    INICIADO → PARSEANDO    InventarioParser + column mapping (fatal on failure)
             → NORMALIZANDO process_row per row (sequential or thread pool)
             → VALIDANDO    auto-corrections, duplicate marking, batch reports
             → SCORING      batch statistics, quality score
             → COMPLETADO   records persisted

Row-level failures never stop the job: they come back from ``process_row``
as ERROR records and the job still completes with non-zero error counts.
Job-level failures (unreadable file, no processor column, commit failure)
move the job to ERROR with ``error_detalle.paso_fallido`` set.

Workers only run ``process_row``, which touches no shared state.  Results
are handed to the ``JobTracker`` from the submitting thread, so the session
is never used concurrently.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Any, BinaryIO

from sqlalchemy.orm import Session

from parque_etl.config import get_settings
from parque_etl.exceptions import ColumnMappingError, ParseError, RecordNotFound
from parque_etl.models.etl_error import EtlError
from parque_etl.models.etl_job import EtlJob
from parque_etl.models.parque_informatico import ParqueInformatico
from parque_etl.parsers.column_mapper import ColumnMapping, map_columns
from parque_etl.parsers.inventario_parser import InventarioParser
from parque_etl.services.job_tracker import JobTracker
from parque_etl.services.row_processor import build_audit, generate_statistics, process_row
from parque_etl.services.validation_rule_service import corregir_registros
from parque_etl.validators.business_rules import BusinessRulesValidator
from parque_etl.validators.schema_validator import SchemaValidator

logger = logging.getLogger(__name__)

_schema_validator = SchemaValidator()
_rules_validator = BusinessRulesValidator()


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


def _resolver_opciones(opciones: Mapping[str, Any] | None) -> dict[str, Any]:
    """Merge caller options over the configured defaults."""
    settings = get_settings()
    opciones = dict(opciones or {})
    return {
        "strict_mode": bool(opciones.get("strict_mode", settings.ETL_STRICT_MODE)),
        "auto_fix": bool(opciones.get("auto_fix", settings.ETL_AUTO_FIX)),
        "skip_validation": list(opciones.get("skip_validation") or []),
        "max_workers": max(1, int(opciones.get("max_workers") or settings.ETL_MAX_WORKERS)),
        "commit_cada": max(1, int(opciones.get("commit_cada") or 25)),
    }


# ---------------------------------------------------------------------------
# Row loop
# ---------------------------------------------------------------------------


def _procesar_filas(
    tracker: JobTracker,
    rows: list[Mapping[str, Any]],
    filas: list[int],
    mapping: ColumnMapping,
    audit: dict[str, Any],
    opciones: dict[str, Any],
) -> list[dict[str, Any]]:
    """Run ``process_row`` over every row, stopping early on cancellation.

    Returns:
        Processed records in input order (fewer than ``rows`` when the job
        was cancelled).
    """

    def _tarea(index: int) -> Callable[[], dict[str, Any]]:
        return lambda: process_row(
            rows[index],
            mapping,
            audit,
            index,
            fila=filas[index],
            strict_mode=opciones["strict_mode"],
            skip_validation=opciones["skip_validation"],
            schema_validator=_schema_validator,
            rules_validator=_rules_validator,
        )

    max_workers = opciones["max_workers"]
    resultados: dict[int, dict[str, Any]] = {}

    if max_workers == 1:
        for index in range(len(rows)):
            if tracker.cancelado():
                break
            record = _tarea(index)()
            tracker.registrar_resultado_fila(record)
            resultados[index] = record
        return [resultados[i] for i in sorted(resultados)]

    # Keep a bounded window in flight so cancellation is seen between rows.
    ventana = max_workers * 2
    pendientes: dict[Future, int] = {}
    siguiente = 0
    cancelado = False

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="etl-row") as executor:
        while siguiente < len(rows) or pendientes:
            while not cancelado and siguiente < len(rows) and len(pendientes) < ventana:
                if tracker.cancelado():
                    cancelado = True
                    break
                pendientes[executor.submit(_tarea(siguiente))] = siguiente
                siguiente += 1
            if not pendientes:
                break

            done, _ = wait(pendientes, return_when=FIRST_COMPLETED)
            for future in done:
                index = pendientes.pop(future)
                record = future.result()
                tracker.registrar_resultado_fila(record)
                resultados[index] = record

    logger.info(
        "_procesar_filas: job %s — %d/%d filas con %d workers",
        tracker.job.id, len(resultados), len(rows), max_workers,
    )
    return [resultados[i] for i in sorted(resultados)]


# ---------------------------------------------------------------------------
# Batch stages
# ---------------------------------------------------------------------------


def marcar_duplicados(records: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Mark later repeats of ``(audit_id, usuario_id)`` as DUPLICADO.

    The first occurrence keeps its state; ERROR records are left alone.

    Returns:
        The records that were marked.
    """
    vistos: set[tuple[Any, Any]] = set()
    marcados: list[dict[str, Any]] = []
    for record in records:
        clave = (record.get("audit_id"), record.get("usuario_id"))
        if clave in vistos and record.get("estado_etl") != "ERROR":
            record["estado_etl"] = "DUPLICADO"
            record["advertencias"] = [
                *record.get("advertencias", []),
                {
                    "campo": "usuario_id",
                    "mensaje": f"Usuario {record.get('usuario_id')} duplicado en la auditoría",
                    "tipo": "VALIDATION",
                    "codigo": "USUARIO_DUPLICADO",
                    "severidad": "WARNING",
                    "paso": "VALIDATION",
                    "valor_original": record.get("usuario_id"),
                },
            ]
            marcados.append(record)
        vistos.add(clave)
    return marcados


def _reportes(records: list[dict[str, Any]], opciones: dict[str, Any]) -> dict[str, Any]:
    esquema = _schema_validator.validate_batch(records, strict_mode=opciones["strict_mode"])
    negocio = _rules_validator.generar_reporte(
        _rules_validator.validate_batch(records, skip_validation=opciones["skip_validation"])
    )
    # Per-rule finding lists stay out of the job's JSON column
    return {
        "calidad": _schema_validator.generar_reporte_calidad(esquema),
        "reglas_negocio": {
            k: v for k, v in negocio.items() if k not in ("errores_por_regla", "advertencias_por_regla")
        },
    }


def _persistir(
    tracker: JobTracker,
    records: list[dict[str, Any]],
    procesado_por: str | None,
    strict_mode: bool,
) -> int:
    """Insert the records and link single-row errors to the stored rows.

    In strict mode records with validation errors are not stored.
    """
    db, job = tracker.db, tracker.job
    por_fila: dict[int, ParqueInformatico] = {}
    for record in records:
        if strict_mode and record.get("errores_validacion"):
            continue
        registro = ParqueInformatico.from_record({**record, "job_id": job.id, "procesado_por": procesado_por})
        db.add(registro)
        if record.get("fila_archivo") is not None:
            por_fila[record["fila_archivo"]] = registro

    try:
        db.flush()
        errores = (
            db.query(EtlError)
            .filter(EtlError.job_id == job.id, EtlError.veces_ocurrido == 1, EtlError.fila_archivo.isnot(None))
            .all()
        )
        for error in errores:
            registro = por_fila.get(error.fila_archivo)
            if registro is not None:
                error.parque_informatico_id = registro.id
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("_persistir: job %s commit failed — rolling back", job.id)
        raise

    logger.info("_persistir: job %s — %d registros guardados", job.id, len(por_fila))
    return len(por_fila)


def _ejecutar(
    tracker: JobTracker,
    rows: list[Mapping[str, Any]],
    filas: list[int],
    mapping: ColumnMapping,
    audit: dict[str, Any],
    opciones: dict[str, Any],
    procesado_por: str | None,
) -> EtlJob:
    """Rows → batch stages → persistence → COMPLETADO (shared by file and manual jobs)."""
    db, job = tracker.db, tracker.job
    tracker.set_total(len(rows))
    tracker.transicion("NORMALIZANDO", f"Procesando {len(rows)} filas")

    records = _procesar_filas(tracker, rows, filas, mapping, audit, opciones)
    if tracker.cancelado():
        logger.warning("ETL: job %s cancelado tras %d filas", job.id, len(records))
        tracker.completar()
        return job

    paso = "VALIDATION"
    try:
        tracker.transicion("VALIDANDO", "Validación de lote")
        if opciones["auto_fix"]:
            corregir_registros(db, records)
        duplicados = marcar_duplicados(records)
        for record in duplicados:
            aviso = record["advertencias"][-1]
            tracker.crear_error(
                tipo=aviso["tipo"],
                severidad="WARNING",
                codigo_error=aviso["codigo"],
                mensaje=aviso["mensaje"],
                campo_afectado=aviso["campo"],
                valor_original=aviso["valor_original"],
                paso_etl=aviso["paso"],
                fila_archivo=record.get("fila_archivo"),
            )
        if duplicados:
            job.registros_validos = sum(1 for r in records if r.get("estado_etl") == "VALIDADO")
            tracker.log("WARN", f"{len(duplicados)} registros duplicados")
        reportes = _reportes(records, opciones)

        paso = "SCORING"
        tracker.transicion("SCORING", "Cálculo de estadísticas")
        estadisticas = generate_statistics(records)
        job.score_calidad_promedio = reportes["calidad"]["resumen"]["score_calidad"]

        paso = "PERSISTENCE"
        guardados = _persistir(tracker, records, procesado_por, opciones["strict_mode"])
    except Exception as exc:
        tracker.fallar(exc, paso)
        raise

    tracker.completar({
        "estadisticas": estadisticas,
        "reportes": reportes,
        "registros_guardados": guardados,
        "duplicados": len(duplicados),
    })
    return job


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def procesar_archivo(
    db: Session,
    source: str | Path | bytes | BinaryIO,
    filename: str | None = None,
    audit: Mapping[str, Any] | None = None,
    usuario_id: str | None = None,
    opciones: Mapping[str, Any] | None = None,
) -> EtlJob:
    """Run the whole pipeline on one uploaded inventory file.

    Args:
        db: Active SQLAlchemy session.
        source: File path, raw bytes or a binary file object.
        filename: Name used to pick the Excel or CSV reader; taken from
            ``source`` when it is a path.
        audit: ``audit_id`` / ``audit_date`` / ``audit_cycle`` / ``audit_version``.
        usuario_id: User who uploaded the file.
        opciones: ``strict_mode``, ``auto_fix``, ``skip_validation``,
            ``max_workers``, ``commit_cada``; missing keys come from settings.

    Returns:
        The finished ``EtlJob`` (COMPLETADO, ERROR or CANCELADO).

    Raises:
        ParseError: The file could not be read (job left in ERROR).
        ColumnMappingError: No processor column (job left in ERROR).
    """
    opts = _resolver_opciones(opciones)
    audit_completo = build_audit(audit)

    parser = InventarioParser(source, filename=filename)
    tracker = JobTracker.iniciar(
        db,
        nombre_archivo=parser.filename or "<bytes>",
        tipo_archivo=parser.tipo_archivo,
        tamano_archivo_bytes=len(parser.file_bytes),
        auditoria_id=audit_completo["audit_id"],
        usuario_id=usuario_id,
        configuracion={k: v for k, v in opts.items() if k != "commit_cada"},
        version_etl=get_settings().VERSION_ETL,
        commit_cada=opts["commit_cada"],
    )

    tracker.transicion("PARSEANDO", f"Leyendo {tracker.job.nombre_archivo}")
    result = parser.parse()
    for warning in result.warnings:
        tracker.log("WARN", warning)

    if parser.mapping_error is not None:
        tracker.fallar(parser.mapping_error)
        raise parser.mapping_error
    if not result.ok:
        error = ParseError("; ".join(result.errors))
        tracker.fallar(error)
        raise error

    tracker.log("INFO", result.summary(), {"column_mapping": result.metadata.get("column_mapping", {})})
    return _ejecutar(
        tracker,
        result.records,
        result.metadata.get("filas") or list(range(1, len(result.records) + 1)),
        parser.mapping,
        audit_completo,
        opts,
        usuario_id,
    )


def procesar_registros(
    db: Session,
    rows: Iterable[Mapping[str, Any]],
    audit: Mapping[str, Any] | None = None,
    usuario_id: str | None = None,
    opciones: Mapping[str, Any] | None = None,
    nombre: str = "carga_manual",
) -> EtlJob:
    """Run the pipeline on rows already in memory (MANUAL job).

    Rows are ``{header: cell}`` dicts; headers are mapped exactly like a
    spreadsheet header row.

    Raises:
        ColumnMappingError: No processor column (job left in ERROR).
    """
    rows = list(rows)
    opts = _resolver_opciones(opciones)
    audit_completo = build_audit(audit)

    tracker = JobTracker.iniciar(
        db,
        nombre_archivo=nombre,
        tipo_archivo="MANUAL",
        auditoria_id=audit_completo["audit_id"],
        usuario_id=usuario_id,
        configuracion={k: v for k, v in opts.items() if k != "commit_cada"},
        version_etl=get_settings().VERSION_ETL,
        commit_cada=opts["commit_cada"],
    )

    headers: list[str] = []
    for row in rows:
        headers.extend(str(h) for h in row if str(h) not in headers)

    tracker.transicion("PARSEANDO", f"{len(rows)} registros recibidos")
    try:
        mapping = map_columns(headers)
    except ColumnMappingError as exc:
        tracker.fallar(exc)
        raise

    return _ejecutar(
        tracker,
        rows,
        list(range(1, len(rows) + 1)),
        mapping,
        audit_completo,
        opts,
        usuario_id,
    )


def cancelar_job(db: Session, job_id: int) -> EtlJob:
    """Move a running job to CANCELADO.

    The running pipeline notices before scheduling its next row.

    Raises:
        RecordNotFound: If no job with ``job_id`` exists.
        InvalidJobTransition: If the job already finished.
    """
    job: EtlJob | None = db.query(EtlJob).filter(EtlJob.id == job_id).first()
    if job is None:
        raise RecordNotFound(f"Job con id={job_id} no encontrado.")

    job.marcar_cancelado()
    job.add_log("WARN", "Job cancelado por el usuario")
    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("cancelar_job: commit failed — rolling back")
        raise
    db.refresh(job)
    logger.info("cancelar_job: job %d cancelado", job_id)
    return job

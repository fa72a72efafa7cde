"""
Error feed and job status queries.

All read access to ``EtlError`` and ``EtlJob`` for callers polling a job or
browsing the error ledger lives here:

1. **Job status** — ``get_estado_job``, ``obtener_estadisticas_jobs``,
   ``limpiar_jobs_antiguos``.

2. **Error feed** — ``listar_errores`` (filtered, paginated),
   ``obtener_resumen_errores`` (per job), ``obtener_top_errores``
   (recurring signatures over a trailing window), ``marcar_resuelto`` and
   ``limpiar_errores_antiguos``.

Occurrence counts are summed from ``veces_ocurrido`` so a deduplicated
error seen 40 times weighs 40, not 1.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from parque_etl.config import get_settings
from parque_etl.exceptions import RecordNotFound
from parque_etl.models.etl_error import EtlError
from parque_etl.models.etl_job import EtlJob, utcnow
from parque_etl.schemas.common import PaginationParams
from parque_etl.schemas.etl import (
    ErrorFeedResponse,
    ErrorFiltros,
    EtlErrorResponse,
    JobEstadisticas,
    JobStatusResponse,
    ResumenErroresResponse,
    TopErrorItem,
)
from parque_etl.utils.constants import ESTADOS_JOB_TERMINALES

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


def _get_job(db: Session, job_id: int) -> EtlJob:
    job: EtlJob | None = db.query(EtlJob).filter(EtlJob.id == job_id).first()
    if job is None:
        raise RecordNotFound(f"Job con id={job_id} no encontrado.")
    return job


def get_estado_job(db: Session, job_id: int) -> JobStatusResponse:
    """Polling snapshot of a job.

    Raises:
        RecordNotFound: If no job with ``job_id`` exists.
    """
    job = _get_job(db, job_id)
    detalle = job.get_estado_detallado()
    return JobStatusResponse(
        id=job.id,
        nombre_archivo=job.nombre_archivo,
        tipo_archivo=job.tipo_archivo,
        estado=job.estado,
        progreso_porcentaje=min(100.0, job.progreso_porcentaje or 0),
        total_registros=job.total_registros or 0,
        registros_procesados=job.registros_procesados or 0,
        tiempo_transcurrido=detalle["progreso"]["tiempo_transcurrido"],
        tiempo_estimado_restante=detalle["progreso"]["tiempo_estimado_restante"],
        estadisticas=JobEstadisticas(**detalle["estadisticas"]),
        error_detalle=job.error_detalle,
        fecha_inicio=job.fecha_inicio,
        fecha_fin=job.fecha_fin,
    )


def obtener_estadisticas_jobs(db: Session) -> dict[str, Any]:
    """Job counts by state plus mean processing time and quality."""
    por_estado = {
        row.estado: row.cnt
        for row in db.query(EtlJob.estado.label("estado"), func.count(EtlJob.id).label("cnt"))
        .group_by(EtlJob.estado)
        .all()
    }
    tiempo, calidad = (
        db.query(
            func.avg(EtlJob.tiempo_procesamiento_ms),
            func.avg(EtlJob.score_calidad_promedio),
        )
        .filter(EtlJob.estado == "COMPLETADO")
        .one()
    )
    return {
        "total_jobs": sum(por_estado.values()),
        "por_estado": por_estado,
        "tiempo_promedio_ms": round(tiempo) if tiempo is not None else None,
        "calidad_promedio": round(calidad, 2) if calidad is not None else None,
    }


def limpiar_jobs_antiguos(db: Session, dias: int = 30) -> int:
    """Delete finished jobs older than ``dias`` days (with their errors)."""
    limite = utcnow() - timedelta(days=dias)
    jobs = (
        db.query(EtlJob)
        .filter(EtlJob.estado.in_(sorted(ESTADOS_JOB_TERMINALES)), EtlJob.fecha_inicio < limite)
        .all()
    )
    for job in jobs:
        db.delete(job)
    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("limpiar_jobs_antiguos: commit failed — rolling back")
        raise
    logger.info("limpiar_jobs_antiguos: %d jobs eliminados (> %d días)", len(jobs), dias)
    return len(jobs)


# ---------------------------------------------------------------------------
# Error feed
# ---------------------------------------------------------------------------


def _apply_error_filters(q, filtros: ErrorFiltros):
    if filtros.job_id is not None:
        q = q.filter(EtlError.job_id == filtros.job_id)
    if filtros.tipo:
        q = q.filter(EtlError.tipo == filtros.tipo)
    if filtros.severidad:
        q = q.filter(EtlError.severidad == filtros.severidad)
    if filtros.resuelto is not None:
        q = q.filter(EtlError.resuelto.is_(filtros.resuelto))
    if filtros.paso_etl:
        q = q.filter(EtlError.paso_etl == filtros.paso_etl)
    return q


def listar_errores(
    db: Session,
    filtros: ErrorFiltros | None = None,
    pagination: PaginationParams | None = None,
) -> ErrorFeedResponse:
    """Deduplicated error feed, most recently seen first.

    Args:
        db: Active SQLAlchemy session.
        filtros: job / tipo / severidad / resuelto / paso filters.
        pagination: Page number and page size.

    Returns:
        An ``ErrorFeedResponse`` with the current page and the total count.
    """
    filtros = filtros or ErrorFiltros()
    pagination = pagination or PaginationParams()

    q = _apply_error_filters(db.query(EtlError), filtros)
    total: int = q.count()
    page_rows = (
        q.order_by(EtlError.ultima_ocurrencia.desc(), EtlError.id.desc())
        .offset(pagination.offset)
        .limit(pagination.page_size)
        .all()
    )
    rows = [EtlErrorResponse.model_validate(e) for e in page_rows]

    logger.debug(
        "listar_errores: page=%d size=%d total=%d returned=%d",
        pagination.page, pagination.page_size, total, len(rows),
    )
    return ErrorFeedResponse(
        rows=rows,
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
    )


def obtener_resumen_errores(db: Session, job_id: int) -> ResumenErroresResponse:
    """Aggregate error counts of one job, weighted by occurrences."""
    _get_job(db, job_id)
    base = db.query(EtlError).filter(EtlError.job_id == job_id)

    por_tipo = {
        row.tipo: int(row.n)
        for row in db.query(EtlError.tipo.label("tipo"), func.sum(EtlError.veces_ocurrido).label("n"))
        .filter(EtlError.job_id == job_id)
        .group_by(EtlError.tipo)
        .all()
    }
    por_severidad = {
        row.severidad: int(row.n)
        for row in db.query(EtlError.severidad.label("severidad"), func.sum(EtlError.veces_ocurrido).label("n"))
        .filter(EtlError.job_id == job_id)
        .group_by(EtlError.severidad)
        .all()
    }

    return ResumenErroresResponse(
        job_id=job_id,
        total_errores=sum(por_tipo.values()),
        errores_distintos=base.count(),
        por_tipo=por_tipo,
        por_severidad=por_severidad,
        errores_criticos=por_severidad.get("ERROR", 0) + por_severidad.get("CRITICAL", 0),
        errores_recurrentes=base.filter(EtlError.es_recurrente.is_(True)).count(),
        errores_resueltos=base.filter(EtlError.resuelto.is_(True)).count(),
    )


def obtener_top_errores(
    db: Session,
    limit: int = 10,
    dias_atras: int | None = None,
) -> list[TopErrorItem]:
    """Most frequent error signatures seen in the trailing window, across jobs.

    Args:
        db: Active SQLAlchemy session.
        limit: Number of signatures to return.
        dias_atras: Window size; defaults to ``ETL_TOP_ERRORES_DIAS``.
    """
    if dias_atras is None:
        dias_atras = get_settings().ETL_TOP_ERRORES_DIAS
    desde = utcnow() - timedelta(days=dias_atras)

    ocurrencias = func.sum(EtlError.veces_ocurrido).label("ocurrencias")
    rows = (
        db.query(
            EtlError.codigo_error.label("codigo_error"),
            EtlError.tipo.label("tipo"),
            EtlError.mensaje.label("mensaje"),
            ocurrencias,
            func.max(EtlError.ultima_ocurrencia).label("ultima_vez"),
        )
        .filter(EtlError.ultima_ocurrencia >= desde)
        .group_by(EtlError.codigo_error, EtlError.tipo, EtlError.mensaje)
        .order_by(ocurrencias.desc())
        .limit(limit)
        .all()
    )
    return [
        TopErrorItem(
            codigo_error=row.codigo_error,
            tipo=row.tipo,
            mensaje=row.mensaje,
            ocurrencias=int(row.ocurrencias),
            ultima_vez=row.ultima_vez,
        )
        for row in rows
    ]


def marcar_resuelto(
    db: Session,
    error_id: int,
    resolucion: str,
    usuario_id: str | None = None,
) -> EtlError:
    """Mark one ledger entry as resolved.

    Raises:
        RecordNotFound: If no error with ``error_id`` exists.
    """
    error: EtlError | None = db.query(EtlError).filter(EtlError.id == error_id).first()
    if error is None:
        raise RecordNotFound(f"Error con id={error_id} no encontrado.")
    error.marcar_resuelto(resolucion, usuario_id)
    db.commit()
    db.refresh(error)
    logger.debug("marcar_resuelto: error id=%d resuelto por %s", error_id, usuario_id)
    return error


def limpiar_errores_antiguos(db: Session, dias: int = 90) -> int:
    """Delete resolved errors last seen more than ``dias`` days ago."""
    limite = utcnow() - timedelta(days=dias)
    borrados = (
        db.query(EtlError)
        .filter(EtlError.resuelto.is_(True), EtlError.ultima_ocurrencia < limite)
        .delete(synchronize_session=False)
    )
    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("limpiar_errores_antiguos: commit failed — rolling back")
        raise
    logger.info("limpiar_errores_antiguos: %d errores eliminados (> %d días)", borrados, dias)
    return borrados

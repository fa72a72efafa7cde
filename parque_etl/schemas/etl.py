"""
Pydantic v2 schemas for ETL jobs, the error ledger and batch statistics.

Covers:
- Job status snapshot returned while a file is being processed.
- Error feed rows, filters and the paginated wrapper.
- Error summary and top-N recurring errors.
- Batch statistics produced by the row processor.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Job status
# ---------------------------------------------------------------------------


class JobEstadisticas(BaseModel):
    """Outcome counters of a job."""

    registros_validos: int = Field(0, ge=0)
    registros_con_errores: int = Field(0, ge=0)
    registros_con_advertencias: int = Field(0, ge=0)
    score_calidad_promedio: float | None = None


class JobStatusResponse(BaseModel):
    """Polling snapshot of one ETL job.

    Attributes:
        id: EtlJob primary key.
        estado: INICIADO | PARSEANDO | NORMALIZANDO | VALIDANDO | SCORING |
            COMPLETADO | ERROR | CANCELADO.
        progreso_porcentaje: processed / total × 100.
        tiempo_transcurrido: Human-readable elapsed time (``"2m 3s"``).
        tiempo_estimado_restante: Remaining time estimate (``"45s"``) or None.
        error_detalle: Failure details when ``estado == "ERROR"``.
    """

    id: int = Field(..., description="PK del job.")
    nombre_archivo: str
    tipo_archivo: str
    estado: str = Field(..., description="Estado actual del job.")
    progreso_porcentaje: float = Field(..., ge=0, le=100)
    total_registros: int = Field(..., ge=0)
    registros_procesados: int = Field(..., ge=0)
    tiempo_transcurrido: str
    tiempo_estimado_restante: str | None = None
    estadisticas: JobEstadisticas
    error_detalle: dict[str, Any] | None = None
    fecha_inicio: datetime
    fecha_fin: datetime | None = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": 12,
                "nombre_archivo": "parque_2025_S1.xlsx",
                "tipo_archivo": "EXCEL",
                "estado": "VALIDANDO",
                "progreso_porcentaje": 62.5,
                "total_registros": 400,
                "registros_procesados": 250,
                "tiempo_transcurrido": "1m 4s",
                "tiempo_estimado_restante": "38s",
                "estadisticas": {
                    "registros_validos": 231,
                    "registros_con_errores": 19,
                    "registros_con_advertencias": 87,
                    "score_calidad_promedio": None,
                },
                "error_detalle": None,
                "fecha_inicio": "2025-03-10T14:02:11",
                "fecha_fin": None,
            }
        }
    )


# ---------------------------------------------------------------------------
# Error feed
# ---------------------------------------------------------------------------


class ErrorFiltros(BaseModel):
    """Filters for the error feed.  Omitting a field means no restriction."""

    job_id: int | None = Field(default=None, ge=1)
    tipo: str | None = None
    severidad: str | None = None
    resuelto: bool | None = None
    paso_etl: str | None = None


class EtlErrorResponse(BaseModel):
    """Single row of the error ledger."""

    id: int
    job_id: int | None = None
    tipo: str
    severidad: str
    codigo_error: str | None = None
    mensaje: str
    campo_afectado: str | None = None
    valor_original: str | None = None
    fila_archivo: int | None = None
    paso_etl: str | None = None
    accion_sugerida: str | None = None
    veces_ocurrido: int = Field(..., ge=1)
    es_recurrente: bool
    resuelto: bool
    primera_ocurrencia: datetime
    ultima_ocurrencia: datetime

    model_config = ConfigDict(from_attributes=True)


class ErrorFeedResponse(BaseModel):
    """Paginated wrapper for the error feed.

    Attributes:
        rows: Errors of the requested page, most recent first.
        total: Total number of matching rows (ignoring pagination).
        page: Current page number (1-based).
        page_size: Number of rows per page as requested.
    """

    rows: list[EtlErrorResponse]
    total: int = Field(..., ge=0, description="Total de errores sin paginar.")
    page: int = Field(..., ge=1, description="Página actual (base 1).")
    page_size: int = Field(..., ge=1, description="Registros por página.")


class ResumenErroresResponse(BaseModel):
    """Aggregate error counts of one job.

    Attributes:
        por_tipo: ``tipo`` → summed occurrences.
        por_severidad: ``severidad`` → summed occurrences.
        errores_criticos: Occurrences with severity ERROR or CRITICAL.
        errores_recurrentes: Distinct errors seen more than once.
    """

    job_id: int
    total_errores: int = Field(..., ge=0)
    errores_distintos: int = Field(..., ge=0)
    por_tipo: dict[str, int] = Field(default_factory=dict)
    por_severidad: dict[str, int] = Field(default_factory=dict)
    errores_criticos: int = Field(..., ge=0)
    errores_recurrentes: int = Field(..., ge=0)
    errores_resueltos: int = Field(..., ge=0)


class TopErrorItem(BaseModel):
    """One recurring error signature across jobs."""

    codigo_error: str | None = None
    tipo: str
    mensaje: str
    ocurrencias: int = Field(..., ge=1)
    ultima_vez: datetime


# ---------------------------------------------------------------------------
# Batch statistics
# ---------------------------------------------------------------------------


class EstadisticasLote(BaseModel):
    """Batch output of the row processor.

    Attributes:
        tasa_cumplimiento: Percentage of compliant records, one decimal.
        cumplimiento_componentes: Component → compliance percentage.
        razones_fallo: Failure reason → number of records.
        por_atencion: Attention type → number of records.
    """

    total_registros: int = Field(..., ge=0)
    registros_cumplen: int = Field(..., ge=0)
    registros_no_cumplen: int = Field(..., ge=0)
    registros_con_error: int = Field(..., ge=0)
    tasa_cumplimiento: float = Field(..., ge=0, le=100)
    distribucion_nivel: dict[str, int] = Field(default_factory=dict)
    distribucion_cpu: dict[str, int] = Field(default_factory=dict)
    distribucion_ram: dict[str, int] = Field(default_factory=dict)
    distribucion_disco: dict[str, int] = Field(default_factory=dict)
    distribucion_os: dict[str, int] = Field(default_factory=dict)
    cumplimiento_componentes: dict[str, float] = Field(default_factory=dict)
    promedios: dict[str, float | None] = Field(default_factory=dict)
    razones_fallo: dict[str, int] = Field(default_factory=dict)
    por_atencion: dict[str, int] = Field(default_factory=dict)

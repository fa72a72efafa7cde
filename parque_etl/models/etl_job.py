"""EtlJob model — one ETL run per uploaded file."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, BigInteger, Column, DateTime, Float, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from parque_etl.config import get_settings
from parque_etl.database import Base
from parque_etl.exceptions import InvalidJobTransition
from parque_etl.utils.constants import ESTADOS_JOB, ESTADOS_JOB_TERMINALES

MAX_LOGS = get_settings().ETL_MAX_LOGS


def utcnow() -> datetime:
    """Naive UTC timestamp, comparable with values read back from SQLite."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class EtlJob(Base):
    """Progress, timing and outcome of one ETL run.

    State machine::

        INICIADO → PARSEANDO → NORMALIZANDO → VALIDANDO → SCORING
                 → COMPLETADO | ERROR | CANCELADO

    Transitions only move forward; the three terminal states are absorbing
    and any attempt to leave them raises ``InvalidJobTransition``.

    Attributes:
        nombre_archivo: Original file name.
        tipo_archivo: EXCEL | CSV | MANUAL.
        estado: Current state (see above).
        total_registros / registros_procesados: Progress counters.
        registros_validos / registros_con_errores / registros_con_advertencias:
            Outcome counters.
        progreso_porcentaje: processed / total × 100 while running.
        tiempo_estimado_restante_ms: Linear extrapolation of the remaining time.
        configuracion: Options of the run (strict_mode, skip_validation …).
        resultados: Batch statistics and validation reports.
        error_detalle: mensaje, tipo, timestamp and paso_fallido on ERROR.
        logs_procesamiento: Last ``MAX_LOGS`` log entries.
    """

    __tablename__ = "etl_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    nombre_archivo = Column(String(500), nullable=False)
    tipo_archivo = Column(String(10), nullable=False, default="EXCEL")  # EXCEL | CSV | MANUAL
    tamano_archivo_bytes = Column(BigInteger, nullable=True)
    auditoria_id = Column(String(50), nullable=True, index=True)
    usuario_id = Column(String(50), nullable=True)

    estado = Column(String(20), nullable=False, default="INICIADO", index=True)
    total_registros = Column(Integer, nullable=False, default=0)
    registros_procesados = Column(Integer, nullable=False, default=0)
    registros_validos = Column(Integer, nullable=False, default=0)
    registros_con_errores = Column(Integer, nullable=False, default=0)
    registros_con_advertencias = Column(Integer, nullable=False, default=0)
    progreso_porcentaje = Column(Float, nullable=False, default=0.0)

    fecha_inicio = Column(DateTime, nullable=False, default=utcnow)
    fecha_fin = Column(DateTime, nullable=True)
    tiempo_procesamiento_ms = Column(Integer, nullable=True)
    tiempo_estimado_restante_ms = Column(Integer, nullable=True)

    configuracion = Column(JSON, nullable=True)
    resultados = Column(JSON, nullable=True)
    error_detalle = Column(JSON, nullable=True)
    logs_procesamiento = Column(JSON, nullable=True)
    score_calidad_promedio = Column(Float, nullable=True)
    version_etl = Column(String(20), nullable=True)

    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    registros = relationship("ParqueInformatico", back_populates="job", lazy="select")
    errores = relationship(
        "EtlError",
        back_populates="job",
        lazy="select",
        cascade="all, delete-orphan",
    )

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    @property
    def es_terminal(self) -> bool:
        return self.estado in ESTADOS_JOB_TERMINALES

    def _transicion(self, nuevo: str) -> None:
        if nuevo not in ESTADOS_JOB:
            raise InvalidJobTransition(f"Estado de job desconocido: {nuevo}")
        actual = self.estado or "INICIADO"
        if actual in ESTADOS_JOB_TERMINALES:
            raise InvalidJobTransition(
                f"Job {self.id} ya finalizó en {actual}; no puede pasar a {nuevo}"
            )
        if nuevo not in ESTADOS_JOB_TERMINALES and ESTADOS_JOB.index(nuevo) < ESTADOS_JOB.index(actual):
            raise InvalidJobTransition(
                f"Job {self.id}: transición hacia atrás {actual} → {nuevo}"
            )
        self.estado = nuevo

    def _cerrar(self, ahora: datetime | None) -> None:
        self.fecha_fin = ahora or utcnow()
        self.tiempo_procesamiento_ms = self.get_tiempo_transcurrido()

    def actualizar_progreso(
        self,
        registros_procesados: int,
        estado: str | None = None,
        ahora: datetime | None = None,
    ) -> None:
        """Set the processed count, recompute percentage and ETA.

        Args:
            registros_procesados: Rows finished so far.
            estado: Optional forward transition applied first.
            ahora: Clock override (tests).

        Raises:
            InvalidJobTransition: When the job is terminal or ``estado``
                would move it backwards.
        """
        if self.es_terminal:
            raise InvalidJobTransition(f"Job {self.id} ya finalizó en {self.estado}")
        if estado:
            self._transicion(estado)

        self.registros_procesados = registros_procesados
        total = self.total_registros or 0
        if total > 0:
            self.progreso_porcentaje = registros_procesados / total * 100

        fraccion = (self.progreso_porcentaje or 0) / 100
        if 0 < fraccion < 1:
            transcurrido = self.get_tiempo_transcurrido(ahora)
            self.tiempo_estimado_restante_ms = int(transcurrido / fraccion - transcurrido)
        elif fraccion >= 1:
            self.tiempo_estimado_restante_ms = 0

    def marcar_completado(self, resultados: dict[str, Any] | None = None, ahora: datetime | None = None) -> None:
        self._transicion("COMPLETADO")
        self._cerrar(ahora)
        self.progreso_porcentaje = 100.0
        self.tiempo_estimado_restante_ms = 0
        self.resultados = {**(self.resultados or {}), **(resultados or {})}

    def marcar_error(self, error: BaseException, paso: str | None = None, ahora: datetime | None = None) -> None:
        """Move to ERROR, freezing the percentage at its last value.

        ``paso`` defaults to the exception's ``step`` attribute when present.
        """
        self._transicion("ERROR")
        self._cerrar(ahora)
        self.tiempo_estimado_restante_ms = None
        self.error_detalle = {
            "mensaje": getattr(error, "message", None) or str(error),
            "tipo": type(error).__name__,
            "timestamp": self.fecha_fin.isoformat(),
            "paso_fallido": paso or getattr(error, "step", None) or "DESCONOCIDO",
        }

    def marcar_cancelado(self, ahora: datetime | None = None) -> None:
        self._transicion("CANCELADO")
        self._cerrar(ahora)
        self.tiempo_estimado_restante_ms = None

    # ------------------------------------------------------------------
    # Logs and timing
    # ------------------------------------------------------------------

    def add_log(self, nivel: str, mensaje: str, datos: dict[str, Any] | None = None) -> None:
        """Append a log entry (INFO | WARN | ERROR | DEBUG), keeping the last ``MAX_LOGS``."""
        entry = {
            "timestamp": utcnow().isoformat(),
            "nivel": nivel,
            "mensaje": mensaje,
            "datos": datos or {},
        }
        self.logs_procesamiento = [*(self.logs_procesamiento or []), entry][-MAX_LOGS:]

    def get_tiempo_transcurrido(self, ahora: datetime | None = None) -> int:
        """Milliseconds from ``fecha_inicio`` to ``fecha_fin`` (or now)."""
        inicio = self.fecha_inicio or utcnow()
        fin = self.fecha_fin or ahora or utcnow()
        return int((fin - inicio).total_seconds() * 1000)

    def get_tiempo_transcurrido_formateado(self, ahora: datetime | None = None) -> str:
        """``"1h 2m 3s"``, ``"2m 3s"`` or ``"3s"``."""
        segundos = self.get_tiempo_transcurrido(ahora) // 1000
        minutos, horas = segundos // 60, segundos // 3600
        if horas > 0:
            return f"{horas}h {minutos % 60}m {segundos % 60}s"
        if minutos > 0:
            return f"{minutos}m {segundos % 60}s"
        return f"{segundos}s"

    def get_estado_detallado(self) -> dict[str, Any]:
        restante = self.tiempo_estimado_restante_ms
        return {
            "id": self.id,
            "estado": self.estado,
            "progreso": {
                "porcentaje": round(self.progreso_porcentaje or 0, 2),
                "registros_procesados": self.registros_procesados,
                "registros_total": self.total_registros,
                "tiempo_transcurrido": self.get_tiempo_transcurrido_formateado(),
                "tiempo_estimado_restante": f"{round(restante / 1000)}s" if restante else None,
            },
            "estadisticas": {
                "registros_validos": self.registros_validos,
                "registros_con_errores": self.registros_con_errores,
                "registros_con_advertencias": self.registros_con_advertencias,
                "score_calidad_promedio": self.score_calidad_promedio,
            },
            "archivo": {
                "nombre": self.nombre_archivo,
                "tipo": self.tipo_archivo,
                "tamano_mb": (
                    round(self.tamano_archivo_bytes / 1024 / 1024, 2)
                    if self.tamano_archivo_bytes
                    else None
                ),
            },
            "error_detalle": self.error_detalle,
        }

    def __repr__(self) -> str:
        return f"<EtlJob id={self.id} estado={self.estado} progreso={self.progreso_porcentaje}>"

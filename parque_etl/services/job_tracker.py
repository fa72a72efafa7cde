"""
Job tracker: the only shared mutable state of a running ETL job.

Workers process rows independently and report back through
``JobTracker.registrar_resultado_fila``.  Every method that touches the
session or the job holds ``_lock``, so counters are incremented atomically
and the SQLAlchemy session (not thread-safe) is only used by one thread at
a time.

The error ledger deduplicates by signature (``calcular_firma``): an
in-memory cache answers repeated signatures, and the unique constraint on
``(job_id, firma)`` settles races with other processes.
"""

from __future__ import annotations

import logging
import threading
import traceback
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from parque_etl.models.etl_error import EtlError, calcular_firma
from parque_etl.models.etl_job import EtlJob
from parque_etl.utils.constants import SEVERIDADES, TIPOS_ARCHIVO, TIPOS_ERROR

logger = logging.getLogger(__name__)

# Context rows kept per error signature
MAX_FILAS_CONTEXTO = 50


class JobTracker:
    """Wrap one ``EtlJob`` and the session it lives in.

    Args:
        db: Session owning ``job``.
        job: Persisted job.
        commit_cada: Commit progress every N processed rows so pollers and
            ``cancelar_job`` see it.
    """

    def __init__(self, db: Session, job: EtlJob, commit_cada: int = 25) -> None:
        self.db = db
        self.job = job
        self.commit_cada = max(1, commit_cada)
        self._lock = threading.RLock()
        self._errores: dict[str, EtlError] = {}

    @classmethod
    def iniciar(
        cls,
        db: Session,
        nombre_archivo: str,
        tipo_archivo: str = "EXCEL",
        tamano_archivo_bytes: int | None = None,
        auditoria_id: str | None = None,
        usuario_id: str | None = None,
        configuracion: dict[str, Any] | None = None,
        version_etl: str | None = None,
        commit_cada: int = 25,
    ) -> JobTracker:
        """Create and commit a new job in INICIADO."""
        if tipo_archivo not in TIPOS_ARCHIVO:
            raise ValueError(
                f"tipo_archivo '{tipo_archivo}' no es válido. Valores válidos: {TIPOS_ARCHIVO}."
            )
        job = EtlJob(
            nombre_archivo=nombre_archivo,
            tipo_archivo=tipo_archivo,
            tamano_archivo_bytes=tamano_archivo_bytes,
            auditoria_id=auditoria_id,
            usuario_id=usuario_id,
            configuracion=configuracion or {},
            version_etl=version_etl,
            estado="INICIADO",
        )
        job.add_log("INFO", f"Job creado para {nombre_archivo}")
        db.add(job)
        db.commit()
        db.refresh(job)
        logger.info("JobTracker: job %s creado (%s, %s)", job.id, nombre_archivo, tipo_archivo)
        return cls(db, job, commit_cada=commit_cada)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def transicion(self, estado: str, mensaje: str | None = None) -> None:
        """Move the job forward and commit."""
        with self._lock:
            self.job.actualizar_progreso(self.job.registros_procesados or 0, estado=estado)
            self.job.add_log("INFO", mensaje or f"Estado {estado}")
            self._commit()
        logger.info("JobTracker: job %s → %s", self.job.id, estado)

    def set_total(self, total: int) -> None:
        with self._lock:
            self.job.total_registros = total
            self._commit()

    def log(self, nivel: str, mensaje: str, datos: dict[str, Any] | None = None) -> None:
        with self._lock:
            self.job.add_log(nivel, mensaje, datos)

    def cancelado(self) -> bool:
        """True once the job was cancelled, from this or another session."""
        with self._lock:
            if self.job.estado == "CANCELADO":
                return True
            self.db.flush()
            estado = self.db.query(EtlJob.estado).filter(EtlJob.id == self.job.id).scalar()
            if estado == "CANCELADO":
                self.db.refresh(self.job)
                return True
            return False

    def completar(self, resultados: dict[str, Any] | None = None) -> None:
        with self._lock:
            if self.job.es_terminal:
                # Cancelled while the last rows were in flight
                self._commit()
                return
            self.job.marcar_completado(resultados)
            self.job.add_log("INFO", "Procesamiento completado", {
                "validos": self.job.registros_validos,
                "con_errores": self.job.registros_con_errores,
            })
            self._commit()
        logger.info(
            "JobTracker: job %s COMPLETADO en %s (validos=%d errores=%d)",
            self.job.id,
            self.job.get_tiempo_transcurrido_formateado(),
            self.job.registros_validos,
            self.job.registros_con_errores,
        )

    def fallar(self, error: BaseException, paso: str | None = None) -> None:
        """Move the job to ERROR after a job-level failure and commit.

        The session is rolled back first so a failed flush does not leave
        it unusable.
        """
        with self._lock:
            self.db.rollback()
            if self.job.es_terminal:
                return
            self.job.marcar_error(error, paso=paso)
            self.job.add_log("ERROR", self.job.error_detalle["mensaje"], {
                "paso": self.job.error_detalle["paso_fallido"],
            })
            self.crear_error(
                tipo="SYSTEM",
                severidad="CRITICAL",
                codigo_error=type(error).__name__.upper(),
                mensaje=self.job.error_detalle["mensaje"],
                paso_etl=self.job.error_detalle["paso_fallido"],
                stack_trace="".join(traceback.format_exception(type(error), error, error.__traceback__)),
            )
            self._commit()
        logger.error(
            "JobTracker: job %s ERROR en %s: %s",
            self.job.id, self.job.error_detalle["paso_fallido"], self.job.error_detalle["mensaje"],
        )

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    def registrar_resultado_fila(self, record: dict[str, Any]) -> None:
        """Count one processed record and file its findings in the ledger."""
        with self._lock:
            job = self.job
            job.registros_procesados = (job.registros_procesados or 0) + 1
            if record.get("estado_etl") == "VALIDADO":
                job.registros_validos = (job.registros_validos or 0) + 1
            if record.get("errores_validacion"):
                job.registros_con_errores = (job.registros_con_errores or 0) + 1
            if record.get("advertencias"):
                job.registros_con_advertencias = (job.registros_con_advertencias or 0) + 1

            for entry in record.get("errores_validacion") or []:
                self._registrar_entrada(entry, record)
            for entry in record.get("advertencias") or []:
                self._registrar_entrada(entry, record, severidad="WARNING")

            if not job.es_terminal:
                job.actualizar_progreso(job.registros_procesados)
            if job.registros_procesados % self.commit_cada == 0:
                self._commit()

    def _registrar_entrada(
        self,
        entry: dict[str, Any],
        record: dict[str, Any],
        severidad: str | None = None,
    ) -> None:
        self.crear_error(
            tipo=entry.get("tipo") or "VALIDATION",
            severidad=severidad or entry.get("severidad") or "ERROR",
            codigo_error=entry.get("codigo"),
            mensaje=entry.get("mensaje") or "",
            campo_afectado=entry.get("campo"),
            valor_original=entry.get("valor_original"),
            fila_archivo=record.get("fila_archivo"),
            paso_etl=entry.get("paso"),
            accion_sugerida=entry.get("accion_sugerida"),
            datos_contexto={"usuario_id": record.get("usuario_id"), "hostname": record.get("hostname")},
        )

    # ------------------------------------------------------------------
    # Error ledger
    # ------------------------------------------------------------------

    def crear_error(
        self,
        tipo: str,
        mensaje: str,
        severidad: str = "ERROR",
        codigo_error: str | None = None,
        campo_afectado: str | None = None,
        paso_etl: str | None = None,
        fila_archivo: int | None = None,
        **kwargs: Any,
    ) -> EtlError:
        """Find-or-create the error with this signature.

        An existing signature gets ``incrementar_ocurrencia`` and, when the
        row differs, the row number appended to ``datos_contexto["filas"]``.
        """
        if tipo not in TIPOS_ERROR:
            raise ValueError(f"tipo '{tipo}' no es válido. Valores válidos: {TIPOS_ERROR}.")
        if severidad not in SEVERIDADES:
            raise ValueError(f"severidad '{severidad}' no es válida. Valores válidos: {SEVERIDADES}.")
        firma = calcular_firma(self.job.id, tipo, codigo_error, campo_afectado, mensaje)
        with self._lock:
            error = self._errores.get(firma) or self._buscar(firma)
            if error is not None:
                self._repetir(error, fila_archivo)
                return error

            contexto = dict(kwargs.pop("datos_contexto", None) or {})
            contexto["filas"] = [fila_archivo] if fila_archivo is not None else []
            error = EtlError(
                job_id=self.job.id,
                tipo=tipo,
                severidad=severidad,
                codigo_error=codigo_error,
                mensaje=mensaje,
                firma=firma,
                campo_afectado=campo_afectado,
                paso_etl=paso_etl or "UNKNOWN",
                fila_archivo=fila_archivo,
                datos_contexto=contexto,
                **kwargs,
            )
            # Commit pending work first so a constraint violation only
            # discards the new row.
            self._commit()
            self.db.add(error)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.debug("crear_error: firma %s creada por otro proceso", firma)
                error = self._buscar(firma)
                if error is None:
                    raise
                self._repetir(error, fila_archivo)
                return error

            self._errores[firma] = error
            return error

    def _buscar(self, firma: str) -> EtlError | None:
        error = (
            self.db.query(EtlError)
            .filter(EtlError.job_id == self.job.id, EtlError.firma == firma)
            .first()
        )
        if error is not None:
            self._errores[firma] = error
        return error

    @staticmethod
    def _repetir(error: EtlError, fila_archivo: int | None) -> None:
        error.incrementar_ocurrencia()
        contexto = dict(error.datos_contexto or {})
        filas = list(contexto.get("filas") or [])
        if fila_archivo is not None and fila_archivo not in filas and len(filas) < MAX_FILAS_CONTEXTO:
            filas.append(fila_archivo)
        contexto["filas"] = filas
        # Reassign so the JSON column is flagged dirty
        error.datos_contexto = contexto

    def _commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("JobTracker: commit fallido para job %s", self.job.id)
            raise

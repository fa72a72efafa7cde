"""EtlError model — deduplicated ledger of ETL problems."""

from __future__ import annotations

import hashlib
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from parque_etl.database import Base
from parque_etl.models.etl_job import utcnow


def calcular_firma(
    job_id: int | None,
    tipo: str,
    codigo_error: str | None,
    campo_afectado: str | None,
    mensaje: str,
) -> str:
    """SHA-1 of the (job, tipo, codigo, campo, mensaje) signature."""
    partes = [str(job_id or ""), tipo, codigo_error or "", campo_afectado or "", mensaje]
    return hashlib.sha1("\x1f".join(partes).encode("utf-8")).hexdigest()


class EtlError(Base):
    """One distinct error signature within a job.

    Repeated occurrences of the same signature increment ``veces_ocurrido``
    instead of inserting a new row; ``firma`` is unique per job so the
    database enforces the deduplication as well.

    Attributes:
        tipo: PARSING | VALIDATION | NORMALIZATION | SCORING | DATABASE |
            BUSINESS_RULE | SYSTEM.
        severidad: ERROR | WARNING | INFO | CRITICAL.
        paso_etl: UPLOAD | PARSING | FIELD_DETECTION | NORMALIZATION |
            VALIDATION | SCORING | PERSISTENCE.
        firma: Signature hash (see ``calcular_firma``).
        es_recurrente: True from the second occurrence on.
    """

    __tablename__ = "etl_errors"
    __table_args__ = (UniqueConstraint("job_id", "firma", name="uq_etl_error_job_firma"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(Integer, ForeignKey("etl_jobs.id"), nullable=True, index=True)
    parque_informatico_id = Column(Integer, ForeignKey("parque_informatico.id"), nullable=True)

    tipo = Column(String(20), nullable=False, index=True)
    severidad = Column(String(10), nullable=False, default="ERROR", index=True)
    codigo_error = Column(String(50), nullable=True)
    mensaje = Column(Text, nullable=False)
    firma = Column(String(40), nullable=False)

    campo_afectado = Column(String(100), nullable=True)
    valor_original = Column(Text, nullable=True)
    valor_esperado = Column(Text, nullable=True)
    fila_archivo = Column(Integer, nullable=True)
    columna_archivo = Column(String(100), nullable=True)
    paso_etl = Column(String(20), nullable=True)

    stack_trace = Column(Text, nullable=True)
    datos_contexto = Column(JSON, nullable=True)
    accion_sugerida = Column(String(500), nullable=True)

    resuelto = Column(Boolean, nullable=False, default=False, index=True)
    resolucion = Column(Text, nullable=True)
    resuelto_por = Column(String(50), nullable=True)
    fecha_resolucion = Column(DateTime, nullable=True)

    es_recurrente = Column(Boolean, nullable=False, default=False)
    veces_ocurrido = Column(Integer, nullable=False, default=1)
    primera_ocurrencia = Column(DateTime, nullable=False, default=utcnow)
    ultima_ocurrencia = Column(DateTime, nullable=False, default=utcnow)

    created_at = Column(DateTime, default=func.now(), nullable=False)

    # Relationships
    job = relationship("EtlJob", back_populates="errores", lazy="select")

    def incrementar_ocurrencia(self) -> None:
        self.veces_ocurrido = (self.veces_ocurrido or 1) + 1
        self.ultima_ocurrencia = utcnow()
        if self.veces_ocurrido > 1:
            self.es_recurrente = True

    def marcar_resuelto(self, resolucion: str, usuario_id: str | None = None) -> None:
        self.resuelto = True
        self.resolucion = resolucion
        self.resuelto_por = usuario_id
        self.fecha_resolucion = utcnow()

    def get_contexto_completo(self) -> dict[str, Any]:
        return {
            "error": {
                "id": self.id,
                "tipo": self.tipo,
                "severidad": self.severidad,
                "codigo": self.codigo_error,
                "mensaje": self.mensaje,
            },
            "ubicacion": {
                "campo": self.campo_afectado,
                "fila": self.fila_archivo,
                "columna": self.columna_archivo,
                "paso": self.paso_etl,
            },
            "valores": {
                "original": self.valor_original,
                "esperado": self.valor_esperado,
            },
            "recurrencia": {
                "es_recurrente": self.es_recurrente,
                "veces_ocurrido": self.veces_ocurrido,
                "primera_vez": self.primera_ocurrencia,
                "ultima_vez": self.ultima_ocurrencia,
            },
            "resolucion": {
                "resuelto": self.resuelto,
                "descripcion": self.resolucion,
                "fecha": self.fecha_resolucion,
            },
            "sugerencias": {
                "accion_sugerida": self.accion_sugerida,
            },
            "contexto": self.datos_contexto or {},
        }

    def __repr__(self) -> str:
        return f"<EtlError id={self.id} tipo={self.tipo} veces={self.veces_ocurrido}>"

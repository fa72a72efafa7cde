"""ParqueInformatico model — one audited workstation per row."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from parque_etl.database import Base
from parque_etl.services.scoring import nivel_cumplimiento, score_total


class ParqueInformatico(Base):
    """Normalised inventory record tied to one audit cycle.

    Column names are the interoperability contract with the UI and export
    collaborators; raw cell values survive in ``datos_originales``.

    Attributes:
        audit_id: Audit the record belongs to.
        audit_cycle: ``YYYY-S1`` or ``YYYY-S2``.
        atencion: INBOUND | OUTBOUND | MIXTO | CHAT | EMAIL | SOPORTE.
        cpu_*, ram_*, disk_*, os_*, browser_*, antivirus_*, headset_*:
            Normalised hardware/software fields and component verdicts.
        speed_download_mbps / speed_upload_mbps: Internet speed in Mbps.
        score_hardware / score_software / score_conectividad: 0-100.
        score_total: Mean of the non-zero sub-scores.
        nivel_cumplimiento: EXCELENTE | BUENO | ACEPTABLE | DEFICIENTE | CRITICO.
        estado_etl: PROCESANDO | VALIDADO | ERROR | DUPLICADO | INCOMPLETO.
        job_id: FK to the EtlJob that produced the row.
        fila_archivo: 1-based spreadsheet row.
    """

    __tablename__ = "parque_informatico"
    __table_args__ = (
        Index("ix_parque_audit_usuario", "audit_id", "usuario_id"),
        UniqueConstraint("job_id", "fila_archivo", name="uq_parque_job_fila"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Auditoría
    audit_id = Column(String(50), nullable=False, index=True)
    audit_date = Column(Date, nullable=True)
    audit_cycle = Column(String(10), nullable=True)
    audit_version = Column(String(20), nullable=True)

    # Identificación
    proveedor = Column(String(255), nullable=True, index=True)
    sitio = Column(String(100), nullable=True, index=True)
    atencion = Column(String(20), nullable=True)
    usuario_id = Column(String(50), nullable=True, index=True)
    hostname = Column(String(100), nullable=True)

    # Hardware - CPU
    cpu_brand = Column(String(20), nullable=True)
    cpu_model = Column(String(200), nullable=True)
    cpu_model_number = Column(String(50), nullable=True)
    cpu_generation = Column(Integer, nullable=True)
    cpu_architecture = Column(String(100), nullable=True)
    cpu_speed_ghz = Column(Float, nullable=True)
    cpu_cores = Column(Integer, nullable=True)
    cpu_normalized = Column(String(255), nullable=True)
    cpu_meets_requirements = Column(Boolean, nullable=True)
    cpu_failure_reason = Column(String(500), nullable=True)

    # Hardware - Memoria
    ram_gb = Column(Integer, nullable=True)
    ram_type = Column(String(10), nullable=True)
    ram_speed_mhz = Column(Integer, nullable=True)
    ram_normalized = Column(String(100), nullable=True)
    ram_meets_requirements = Column(Boolean, nullable=True)
    ram_failure_reason = Column(String(500), nullable=True)

    # Hardware - Almacenamiento
    disk_type = Column(String(20), nullable=True)
    disk_capacity_gb = Column(Integer, nullable=True)
    disk_free_gb = Column(Integer, nullable=True)
    disk_normalized = Column(String(100), nullable=True)
    disk_meets_requirements = Column(Boolean, nullable=True)
    disk_failure_reason = Column(String(500), nullable=True)

    # Software - SO
    os_name = Column(String(50), nullable=True)
    os_version = Column(String(50), nullable=True)
    os_architecture = Column(String(10), nullable=True)
    os_build = Column(String(50), nullable=True)
    os_license_type = Column(String(50), nullable=True)
    os_meets_requirements = Column(Boolean, nullable=True)
    os_failure_reason = Column(String(500), nullable=True)

    # Software - Navegador / Antivirus
    browser_name = Column(String(50), nullable=True)
    browser_version = Column(String(50), nullable=True)
    antivirus_brand = Column(String(100), nullable=True)
    antivirus_version = Column(String(50), nullable=True)
    antivirus_updated = Column(Boolean, nullable=True)

    # Periféricos
    headset_brand = Column(String(100), nullable=True)
    headset_model = Column(String(100), nullable=True)
    headset_type = Column(String(20), nullable=True)
    webcam_available = Column(Boolean, nullable=True)
    microphone_type = Column(String(50), nullable=True)

    # Conectividad
    isp_name = Column(String(100), nullable=True)
    connection_type = Column(String(20), nullable=True)
    speed_download_mbps = Column(Float, nullable=True)
    speed_upload_mbps = Column(Float, nullable=True)
    latency_ms = Column(Integer, nullable=True)
    speed_meets_requirements = Column(Boolean, nullable=True)
    speed_failure_reason = Column(String(500), nullable=True)

    # Scoring
    score_hardware = Column(Float, default=0, nullable=False)
    score_software = Column(Float, default=0, nullable=False)
    score_conectividad = Column(Float, default=0, nullable=False)
    score_total = Column(Float, default=0, nullable=False, index=True)
    nivel_cumplimiento = Column(String(20), nullable=True, index=True)
    score_validacion = Column(Integer, nullable=True)
    overall_compliance = Column(Boolean, default=False, nullable=False)
    overall_failure_reason = Column(String(2000), nullable=True)

    # ETL
    estado_etl = Column(String(20), default="PROCESANDO", nullable=False, index=True)
    # PROCESANDO | VALIDADO | ERROR | DUPLICADO | INCOMPLETO
    datos_originales = Column(JSON, nullable=True)
    errores_validacion = Column(JSON, nullable=True)
    advertencias = Column(JSON, nullable=True)
    job_id = Column(Integer, ForeignKey("etl_jobs.id"), nullable=True, index=True)
    fila_archivo = Column(Integer, nullable=True)
    version_etl = Column(String(20), nullable=True)
    procesado_por = Column(String(50), nullable=True)
    fecha_procesamiento = Column(DateTime, default=func.now(), nullable=False)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    job = relationship("EtlJob", back_populates="registros", lazy="select")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def calcular_score_total(self) -> float:
        """Recompute ``score_total`` and ``nivel_cumplimiento`` from the sub-scores."""
        self.score_total = score_total(
            [self.score_hardware, self.score_software, self.score_conectividad]
        )
        self.nivel_cumplimiento = nivel_cumplimiento(self.score_total)
        return self.score_total

    def add_error(self, campo: str | None, mensaje: str) -> None:
        """Append a validation error and mark the record ERROR."""
        entry = {
            "campo": campo,
            "mensaje": mensaje,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        # Reassign so the JSON column is flagged dirty
        self.errores_validacion = [*(self.errores_validacion or []), entry]
        self.estado_etl = "ERROR"

    def add_advertencia(self, campo: str | None, mensaje: str) -> None:
        entry = {
            "campo": campo,
            "mensaje": mensaje,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        self.advertencias = [*(self.advertencias or []), entry]

    def cumple_requisitos_minimos(self) -> dict[str, bool]:
        """Baseline checklist used by dashboards (not the compliance verdict)."""
        return {
            "ram": (self.ram_gb or 0) >= 4,
            "cpu": (self.cpu_speed_ghz or 0) >= 2.0,
            "os": self.os_name in ("Windows 10", "Windows 11"),
            "navegador": self.browser_name in ("Chrome", "Firefox", "Edge"),
            "antivirus": bool(self.antivirus_brand),
            "conectividad": (self.speed_download_mbps or 0) >= 10,
        }

    def get_resumen_tecnico(self) -> dict[str, str]:
        speed = f"{self.cpu_speed_ghz:g}GHz" if self.cpu_speed_ghz else "N/A"
        memoria = f"{self.ram_gb:g}GB {self.ram_type or ''}".strip() if self.ram_gb else "N/A"
        disco = (
            f"{self.disk_capacity_gb:g}GB {self.disk_type or ''}".strip() if self.disk_capacity_gb else "N/A"
        )
        return {
            "cpu": f"{self.cpu_brand or 'N/A'} {self.cpu_model or ''} @ {speed}",
            "memoria": memoria,
            "almacenamiento": disco,
            "so": f"{self.os_name or 'N/A'} {self.os_version or ''}".strip(),
            "conectividad": (
                f"{self.speed_download_mbps or 'N/A'}/{self.speed_upload_mbps or 'N/A'} Mbps"
            ),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> ParqueInformatico:
        """Build an instance from a row-processor record, ignoring unknown keys."""
        columnas = {c.name for c in cls.__table__.columns} - {"id", "created_at", "updated_at"}
        return cls(**{k: v for k, v in record.items() if k in columnas})

    def __repr__(self) -> str:
        return (
            f"<ParqueInformatico id={self.id} usuario={self.usuario_id!r} "
            f"estado={self.estado_etl} score={self.score_total}>"
        )

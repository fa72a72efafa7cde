"""Command-line entry point: process one inventory file.

Usage::

    parque-etl inventario.xlsx --audit-id AUDIT_2025_S1 --workers 4
    parque-etl inventario.csv --strict --skip headset_requirement
"""

from __future__ import annotations

import argparse
import logging
from collections.abc import Sequence

from parque_etl.config import configure_logging, get_settings
from parque_etl.database import SessionLocal, init_db
from parque_etl.exceptions import ParqueETLException
from parque_etl.services.etl_service import procesar_archivo

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="parque-etl",
        description=f"{get_settings().APP_NAME}: normaliza, valida y puntúa un inventario (Excel o CSV).",
    )
    ap.add_argument("archivo", help="Ruta del archivo .xlsx, .xlsm o .csv")
    ap.add_argument("--audit-id", help="Identificador de la auditoría")
    ap.add_argument("--audit-date", help="Fecha de la auditoría (YYYY-MM-DD)")
    ap.add_argument("--audit-cycle", help="Ciclo de auditoría (YYYY-S1 | YYYY-S2)")
    ap.add_argument("--usuario", help="Usuario que carga el archivo")
    ap.add_argument("--workers", type=int, help="Hilos para procesar filas (1 = secuencial)")
    ap.add_argument("--strict", action="store_true", default=None, help="Errores de tipo bloquean la fila")
    ap.add_argument("--no-auto-fix", dest="auto_fix", action="store_false", default=None)
    ap.add_argument(
        "--skip",
        action="append",
        default=[],
        metavar="REGLA",
        help="Regla de negocio a omitir (repetible)",
    )
    ap.add_argument("--log-level", help="Nivel de logging (DEBUG, INFO, ...)")
    return ap


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(args.log_level)
    init_db()

    audit = {
        "audit_id": args.audit_id,
        "audit_date": args.audit_date,
        "audit_cycle": args.audit_cycle,
    }
    opciones = {
        k: v
        for k, v in {
            "strict_mode": args.strict,
            "auto_fix": args.auto_fix,
            "max_workers": args.workers,
            "skip_validation": args.skip,
        }.items()
        if v is not None
    }

    db = SessionLocal()
    try:
        job = procesar_archivo(db, args.archivo, audit=audit, usuario_id=args.usuario, opciones=opciones)
        print(
            f"Job {job.id} {job.estado}: {job.registros_procesados}/{job.total_registros} filas, "
            f"{job.registros_validos} válidas, {job.registros_con_errores} con errores "
            f"({job.get_tiempo_transcurrido_formateado()})"
        )
        return 0 if job.estado == "COMPLETADO" else 1
    except ParqueETLException as exc:
        logger.error("parque-etl: %s (paso %s)", exc.message, exc.step)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())

"""Pruebas de la máquina de estados de EtlJob y del JobTracker."""

from datetime import datetime, timedelta

import pytest

from parque_etl.exceptions import ColumnMappingError, InvalidJobTransition, ParseError
from parque_etl.models import etl_job
from parque_etl.models.etl_error import EtlError, calcular_firma
from parque_etl.models.etl_job import EtlJob
from parque_etl.services.job_tracker import JobTracker

INICIO = datetime(2025, 3, 10, 12, 0, 0)


@pytest.fixture
def job():
    """Job en memoria; los defaults de columna sólo se aplican al hacer flush."""
    return EtlJob(
        nombre_archivo="inventario.xlsx",
        estado="INICIADO",
        total_registros=10,
        registros_procesados=0,
        progreso_porcentaje=0.0,
        fecha_inicio=INICIO,
    )


# ---------------------------------------------------------------------------
# EtlJob
# ---------------------------------------------------------------------------


class TestEtlJob:
    def test_progreso_y_tiempo_estimado(self, job):
        job.actualizar_progreso(5, estado="NORMALIZANDO", ahora=INICIO + timedelta(seconds=10))
        assert job.estado == "NORMALIZANDO"
        assert job.progreso_porcentaje == 50.0
        assert job.tiempo_estimado_restante_ms == 10000

    def test_no_retrocede(self, job):
        job.actualizar_progreso(1, estado="VALIDANDO")
        with pytest.raises(InvalidJobTransition):
            job.actualizar_progreso(2, estado="PARSEANDO")
        assert job.estado == "VALIDANDO"

    def test_mismo_estado_permitido(self, job):
        job.actualizar_progreso(1, estado="NORMALIZANDO")
        job.actualizar_progreso(2, estado="NORMALIZANDO")
        assert job.registros_procesados == 2

    def test_estado_desconocido(self, job):
        with pytest.raises(InvalidJobTransition):
            job.actualizar_progreso(0, estado="PAUSADO")

    def test_error_congela_porcentaje_y_es_absorbente(self, job):
        job.actualizar_progreso(5, estado="PARSEANDO")
        job.marcar_error(ParseError("archivo corrupto"), ahora=INICIO + timedelta(seconds=2))

        assert job.estado == "ERROR"
        assert job.progreso_porcentaje == 50.0
        assert job.tiempo_procesamiento_ms == 2000
        assert job.error_detalle["paso_fallido"] == "PARSING"
        assert job.error_detalle["tipo"] == "ParseError"
        assert job.error_detalle["mensaje"] == "archivo corrupto"

        with pytest.raises(InvalidJobTransition):
            job.actualizar_progreso(6)
        with pytest.raises(InvalidJobTransition):
            job.marcar_completado()

    def test_completado(self, job):
        job.actualizar_progreso(10, estado="SCORING")
        job.marcar_completado({"tasa": 80.0}, ahora=INICIO + timedelta(seconds=3725))

        assert job.progreso_porcentaje == 100.0
        assert job.tiempo_estimado_restante_ms == 0
        assert job.resultados == {"tasa": 80.0}
        assert job.get_tiempo_transcurrido_formateado() == "1h 2m 5s"
        with pytest.raises(InvalidJobTransition):
            job.marcar_cancelado()

    def test_logs_acotados(self, job):
        for i in range(etl_job.MAX_LOGS + 5):
            job.add_log("INFO", f"mensaje {i}")
        assert len(job.logs_procesamiento) == etl_job.MAX_LOGS
        assert job.logs_procesamiento[-1]["mensaje"] == f"mensaje {etl_job.MAX_LOGS + 4}"

    def test_estado_detallado(self, job):
        job.tamano_archivo_bytes = 2 * 1024 * 1024
        detalle = job.get_estado_detallado()
        assert detalle["estado"] == "INICIADO"
        assert detalle["archivo"]["tamano_mb"] == 2.0
        assert detalle["progreso"]["registros_total"] == 10


# ---------------------------------------------------------------------------
# JobTracker
# ---------------------------------------------------------------------------


def _fila(fila, errores=(), advertencias=(), estado="ERROR"):
    return {
        "estado_etl": estado,
        "fila_archivo": fila,
        "usuario_id": f"U{fila}",
        "hostname": f"PC-{fila}",
        "errores_validacion": list(errores),
        "advertencias": list(advertencias),
    }


def _entrada(mensaje, severidad="ERROR", campo="ram_gb"):
    return {
        "campo": campo,
        "mensaje": mensaje,
        "tipo": "BUSINESS_RULE",
        "codigo": "RAM_MINIMA_REQUIREMENT",
        "severidad": severidad,
        "paso": "VALIDATION",
        "valor_original": "4",
    }


class TestJobTracker:
    def test_iniciar(self, db):
        tracker = JobTracker.iniciar(db, "inventario.xlsx", configuracion={"strict_mode": False})
        assert tracker.job.id is not None
        assert tracker.job.estado == "INICIADO"
        assert tracker.job.logs_procesamiento[0]["mensaje"] == "Job creado para inventario.xlsx"

    def test_errores_repetidos_se_deduplican(self, db):
        tracker = JobTracker.iniciar(db, "inventario.xlsx")
        kwargs = dict(tipo="VALIDATION", mensaje="RAM insuficiente", campo_afectado="ram_gb", paso_etl="VALIDATION")

        primero = tracker.crear_error(fila_archivo=2, **kwargs)
        segundo = tracker.crear_error(fila_archivo=3, **kwargs)
        tracker.crear_error(fila_archivo=3, **kwargs)

        assert segundo is primero
        assert primero.veces_ocurrido == 3
        assert primero.es_recurrente is True
        assert primero.datos_contexto["filas"] == [2, 3]
        assert primero.firma == calcular_firma(tracker.job.id, "VALIDATION", None, "ram_gb", "RAM insuficiente")

    def test_otro_tracker_encuentra_la_firma_existente(self, db):
        tracker = JobTracker.iniciar(db, "inventario.xlsx")
        tracker.crear_error(tipo="SYSTEM", mensaje="falla", fila_archivo=2)
        db.commit()

        otro = JobTracker(db, tracker.job)
        error = otro.crear_error(tipo="SYSTEM", mensaje="falla", fila_archivo=4)
        db.commit()

        assert error.veces_ocurrido == 2
        assert db.query(EtlError).count() == 1

    def test_misma_firma_en_otro_job_es_otro_error(self, db):
        a = JobTracker.iniciar(db, "a.xlsx")
        b = JobTracker.iniciar(db, "b.xlsx")
        a.crear_error(tipo="SYSTEM", mensaje="falla")
        b.crear_error(tipo="SYSTEM", mensaje="falla")
        assert db.query(EtlError).count() == 2

    def test_valores_fuera_de_catalogo(self, db):
        with pytest.raises(ValueError):
            JobTracker.iniciar(db, "a.pdf", tipo_archivo="PDF")
        tracker = JobTracker.iniciar(db, "a.xlsx")
        with pytest.raises(ValueError):
            tracker.crear_error(tipo="MISTERIO", mensaje="x")
        with pytest.raises(ValueError):
            tracker.crear_error(tipo="SYSTEM", severidad="FATAL", mensaje="x")
        assert db.query(EtlError).count() == 0

    def test_registrar_resultado_fila(self, db):
        tracker = JobTracker.iniciar(db, "inventario.xlsx")
        tracker.set_total(2)
        tracker.transicion("NORMALIZANDO")

        tracker.registrar_resultado_fila(
            _fila(2, errores=[_entrada("RAM insuficiente")], advertencias=[_entrada("Navegador antiguo", "WARNING", "browser_version")])
        )
        tracker.registrar_resultado_fila(_fila(3, estado="VALIDADO"))
        db.commit()

        job = tracker.job
        assert job.registros_procesados == 2
        assert job.registros_validos == 1
        assert job.registros_con_errores == 1
        assert job.registros_con_advertencias == 1
        assert job.progreso_porcentaje == 100.0

        severidades = sorted(e.severidad for e in db.query(EtlError).all())
        assert severidades == ["ERROR", "WARNING"]
        error = db.query(EtlError).filter(EtlError.severidad == "ERROR").one()
        assert error.datos_contexto == {"usuario_id": "U2", "hostname": "PC-2", "filas": [2]}
        assert error.valor_original == "4"

    def test_fallar(self, db):
        tracker = JobTracker.iniciar(db, "inventario.xlsx")
        tracker.fallar(ColumnMappingError("No se encontró la columna de procesador"))

        job = tracker.job
        assert job.estado == "ERROR"
        assert job.error_detalle["paso_fallido"] == "FIELD_DETECTION"
        error = db.query(EtlError).one()
        assert (error.tipo, error.severidad, error.codigo_error) == ("SYSTEM", "CRITICAL", "COLUMNMAPPINGERROR")
        assert error.paso_etl == "FIELD_DETECTION"

    def test_cancelacion_desde_fuera(self, db):
        tracker = JobTracker.iniciar(db, "inventario.xlsx")
        assert tracker.cancelado() is False

        db.query(EtlJob).filter(EtlJob.id == tracker.job.id).update(
            {"estado": "CANCELADO"}, synchronize_session=False
        )
        assert tracker.cancelado() is True
        assert tracker.job.estado == "CANCELADO"

        tracker.completar({"ignorado": True})
        assert tracker.job.estado == "CANCELADO"

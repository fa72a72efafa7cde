"""Pruebas de extremo a extremo del orquestador ETL."""

import pandas as pd
import pytest

from parque_etl.exceptions import ColumnMappingError, InvalidJobTransition, ParseError, RecordNotFound
from parque_etl.models.etl_error import EtlError
from parque_etl.models.etl_job import EtlJob
from parque_etl.models.parque_informatico import ParqueInformatico
from parque_etl.services import etl_service

AUDIT = {"audit_id": "AUDIT_TEST", "audit_date": "2025-03-10", "audit_cycle": "2025-S1"}


@pytest.fixture
def excel(tmp_path, fila_conforme, fila_no_conforme):
    ruta = tmp_path / "parque_2025_S1.xlsx"
    pd.DataFrame([fila_conforme, fila_no_conforme]).to_excel(ruta, index=False)
    return ruta


def _registros(db, job):
    return (
        db.query(ParqueInformatico)
        .filter(ParqueInformatico.job_id == job.id)
        .order_by(ParqueInformatico.fila_archivo)
        .all()
    )


class TestProcesarArchivo:
    def test_archivo_completo(self, db, excel):
        job = etl_service.procesar_archivo(db, excel, audit=AUDIT, usuario_id="analista")

        assert job.estado == "COMPLETADO"
        assert job.tipo_archivo == "EXCEL"
        assert job.nombre_archivo == "parque_2025_S1.xlsx"
        assert (job.total_registros, job.registros_procesados) == (2, 2)
        assert job.registros_validos == 1
        assert job.registros_con_errores == 1
        assert job.registros_con_advertencias == 1
        assert job.progreso_porcentaje == 100.0
        assert job.resultados["registros_guardados"] == 2
        assert job.resultados["estadisticas"]["tasa_cumplimiento"] == 50.0

        registros = _registros(db, job)
        assert [r.fila_archivo for r in registros] == [2, 3]
        assert [r.estado_etl for r in registros] == ["VALIDADO", "ERROR"]
        assert registros[0].procesado_por == "analista"
        assert registros[0].audit_id == "AUDIT_TEST"

        errores = db.query(EtlError).filter(EtlError.job_id == job.id).all()
        assert len(errores) == 4
        assert {e.fila_archivo for e in errores} == {3}
        assert {e.parque_informatico_id for e in errores} == {registros[1].id}

    def test_modo_estricto_no_guarda_filas_con_errores(self, db, excel):
        job = etl_service.procesar_archivo(db, excel, audit=AUDIT, opciones={"strict_mode": True})

        assert job.estado == "COMPLETADO"
        assert [r.fila_archivo for r in _registros(db, job)] == [2]

    def test_sin_columna_de_procesador(self, db, tmp_path):
        ruta = tmp_path / "sin_cpu.xlsx"
        pd.DataFrame([{"Usuario": "U1", "RAM": "8 GB"}]).to_excel(ruta, index=False)

        with pytest.raises(ColumnMappingError):
            etl_service.procesar_archivo(db, ruta)

        job = db.query(EtlJob).one()
        assert job.estado == "ERROR"
        assert job.error_detalle["paso_fallido"] == "FIELD_DETECTION"
        error = db.query(EtlError).one()
        assert (error.tipo, error.severidad, error.codigo_error) == ("SYSTEM", "CRITICAL", "COLUMNMAPPINGERROR")
        assert db.query(ParqueInformatico).count() == 0

    def test_formato_no_soportado(self, db):
        with pytest.raises(ParseError):
            etl_service.procesar_archivo(db, b"%PDF-1.4", filename="inventario.pdf")

        job = db.query(EtlJob).one()
        assert job.estado == "ERROR"
        assert job.error_detalle["paso_fallido"] == "PARSING"


class TestProcesarRegistros:
    def test_duplicados(self, db, fila_conforme):
        job = etl_service.procesar_registros(db, [fila_conforme, fila_conforme], audit=AUDIT)

        assert job.estado == "COMPLETADO"
        assert job.tipo_archivo == "MANUAL"
        assert job.registros_validos == 1
        assert job.resultados["duplicados"] == 1
        assert [r.estado_etl for r in _registros(db, job)] == ["VALIDADO", "DUPLICADO"]

        aviso = db.query(EtlError).filter(EtlError.codigo_error == "USUARIO_DUPLICADO").one()
        assert aviso.severidad == "WARNING"
        assert aviso.fila_archivo == 2

    def test_en_paralelo_conserva_el_orden(self, db, fila_conforme):
        filas = [dict(fila_conforme, Usuario=f"U{i:03d}") for i in range(5)]
        job = etl_service.procesar_registros(db, filas, audit=AUDIT, opciones={"max_workers": 2})

        assert job.estado == "COMPLETADO"
        assert job.registros_procesados == 5
        assert job.registros_validos == 5
        registros = _registros(db, job)
        assert [r.usuario_id for r in registros] == [f"U{i:03d}" for i in range(5)]

    def test_sin_procesador(self, db):
        with pytest.raises(ColumnMappingError):
            etl_service.procesar_registros(db, [{"Usuario": "U1"}])
        assert db.query(EtlJob).one().estado == "ERROR"

    def test_fila_vacia_no_detiene_el_lote(self, db, fila_conforme):
        filas = [fila_conforme, dict(fila_conforme, Usuario="U009", Procesador=""), dict(fila_conforme, Usuario="U010")]
        job = etl_service.procesar_registros(db, filas, audit=AUDIT)

        assert job.estado == "COMPLETADO"
        assert job.registros_validos == 2
        assert job.registros_con_errores == 1
        assert [r.estado_etl for r in _registros(db, job)] == ["VALIDADO", "ERROR", "VALIDADO"]


class TestCancelacion:
    def test_cancelar_durante_el_proceso(self, db, fila_conforme, monkeypatch):
        original = etl_service.process_row
        llamadas = []

        def _procesar_y_cancelar(*args, **kwargs):
            record = original(*args, **kwargs)
            llamadas.append(record)
            if len(llamadas) == 1:
                job = db.query(EtlJob).one()
                etl_service.cancelar_job(db, job.id)
            return record

        monkeypatch.setattr(etl_service, "process_row", _procesar_y_cancelar)
        filas = [dict(fila_conforme, Usuario=f"U{i}") for i in range(4)]
        job = etl_service.procesar_registros(db, filas, audit=AUDIT)

        assert job.estado == "CANCELADO"
        assert job.registros_procesados == 1
        assert len(llamadas) == 1
        assert db.query(ParqueInformatico).count() == 0

    def test_no_se_cancela_un_job_terminado(self, db, fila_conforme):
        job = etl_service.procesar_registros(db, [fila_conforme], audit=AUDIT)
        with pytest.raises(InvalidJobTransition):
            etl_service.cancelar_job(db, job.id)

    def test_job_inexistente(self, db):
        with pytest.raises(RecordNotFound):
            etl_service.cancelar_job(db, 123)


def test_marcar_duplicados_respeta_errores():
    records = [
        {"audit_id": "A", "usuario_id": "U1", "estado_etl": "VALIDADO"},
        {"audit_id": "A", "usuario_id": "U1", "estado_etl": "ERROR"},
        {"audit_id": "A", "usuario_id": "U1", "estado_etl": "INCOMPLETO"},
        {"audit_id": "B", "usuario_id": "U1", "estado_etl": "VALIDADO"},
    ]
    marcados = etl_service.marcar_duplicados(records)
    assert marcados == [records[2]]
    assert [r["estado_etl"] for r in records] == ["VALIDADO", "ERROR", "DUPLICADO", "VALIDADO"]

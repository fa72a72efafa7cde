"""Pruebas del punto de entrada de línea de comandos y de la sesión por defecto."""

import pandas as pd
from sqlalchemy.orm import Session, sessionmaker

from parque_etl import cli
from parque_etl.database import get_db, init_db
from parque_etl.models.etl_job import EtlJob


def _preparar(monkeypatch, engine):
    monkeypatch.setattr(cli, "SessionLocal", sessionmaker(autocommit=False, autoflush=False, bind=engine))
    monkeypatch.setattr(cli, "init_db", lambda: init_db(bind=engine))


def test_procesa_archivo(engine, monkeypatch, tmp_path, fila_conforme, capsys):
    ruta = tmp_path / "inventario.xlsx"
    pd.DataFrame([fila_conforme]).to_excel(ruta, index=False)
    _preparar(monkeypatch, engine)

    codigo = cli.main([str(ruta), "--audit-id", "AUDIT_CLI", "--workers", "2", "--usuario", "analista"])

    assert codigo == 0
    salida = capsys.readouterr().out
    assert "COMPLETADO" in salida
    assert "1/1 filas" in salida

    db = Session(bind=engine)
    job = db.query(EtlJob).one()
    assert job.auditoria_id == "AUDIT_CLI"
    assert job.configuracion["max_workers"] == 2
    db.close()


def test_archivo_invalido_devuelve_error(engine, monkeypatch, tmp_path):
    ruta = tmp_path / "sin_cpu.csv"
    pd.DataFrame([{"Usuario": "U1"}]).to_csv(ruta, index=False)
    _preparar(monkeypatch, engine)

    assert cli.main([str(ruta)]) == 1


def test_get_db_entrega_una_sesion():
    gen = get_db()
    db = next(gen)
    assert isinstance(db, Session)
    gen.close()

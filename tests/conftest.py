"""Fixtures compartidos: base SQLite en memoria y filas de inventario de ejemplo."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import parque_etl.models  # noqa: F401  (registra las tablas en Base.metadata)
from parque_etl.database import Base

ENCABEZADOS = [
    "Proveedor",
    "Sitio",
    "Atención",
    "Usuario",
    "Hostname",
    "Procesador",
    "RAM",
    "Disco",
    "Sistema Operativo",
    "Navegador",
    "Antivirus",
    "Diadema",
    "ISP",
    "Velocidad Bajada",
    "Velocidad Subida",
]


@pytest.fixture
def engine():
    """Motor SQLite en memoria compartido entre hilos (una sola conexión)."""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def db(engine):
    """Sesión aislada por prueba."""
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fila_conforme():
    """Equipo que cumple todos los requisitos para atención INBOUND."""
    return {
        "Proveedor": "Acme Contact",
        "Sitio": "Lima",
        "Atención": "Inbound",
        "Usuario": "U001",
        "Hostname": "pc-lima-01",
        "Procesador": "Intel Core i7-10700 @ 2.90GHz",
        "RAM": "16 GB DDR4",
        "Disco": "SSD 512GB",
        "Sistema Operativo": "Windows 11 Pro 64 bits",
        "Navegador": "Chrome 118",
        "Antivirus": "Kaspersky Endpoint 11",
        "Diadema": "Jabra USB",
        "ISP": "Movistar",
        "Velocidad Bajada": "100 Mbps",
        "Velocidad Subida": "50 Mbps",
    }


@pytest.fixture
def fila_no_conforme():
    """Equipo de SOPORTE con CPU lenta, poca RAM, disco sin tipo y sin diadema."""
    return {
        "Proveedor": "Acme Contact",
        "Sitio": "Arequipa",
        "Atención": "Soporte",
        "Usuario": "U002",
        "Hostname": "pc-aqp-07",
        "Procesador": "Intel(R) Core(TM) i5-8400 @ 2.80GHz",
        "RAM": "4096 MB",
        "Disco": "1 TR",
        "Sistema Operativo": "Windows 10",
        "Navegador": "Chrome 80",
        "Antivirus": "Windows Defender",
        "Diadema": "",
        "ISP": "Claro",
        "Velocidad Bajada": "20 Mbps",
        "Velocidad Subida": "10",
    }


@pytest.fixture
def mapping():
    """Mapeo de columnas del encabezado estándar."""
    from parque_etl.parsers.column_mapper import map_columns

    return map_columns(ENCABEZADOS)


@pytest.fixture
def encabezados():
    return list(ENCABEZADOS)

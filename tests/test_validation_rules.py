"""Pruebas del catálogo de reglas de validación (modelo y servicio)."""

import pytest

from parque_etl.models.validation_rule import ValidationRule
from parque_etl.services import validation_rule_service as svc
from parque_etl.validators.policy import RAM_POR_ATENCION


def _regla(**kwargs):
    datos = {
        "nombre": "Regla de prueba",
        "codigo_regla": "PRUEBA",
        "campo_objetivo": "ram_gb",
        "tipo_validacion": "RANGE",
        "valor_minimo": 8,
        "mensaje_error": "RAM fuera de rango",
        "categoria": "HARDWARE",
        "activa": True,
        "bloquea_procesamiento": True,
    }
    datos.update(kwargs)
    return ValidationRule(**datos)


class TestValidationRule:
    def test_alcance_por_proveedor(self):
        regla = _regla(proveedores_especificos=["Acme Contact"])

        fuera = regla.validar_valor(4, {"proveedor": "Otro"})
        assert fuera["omitida"] is True and fuera["valido"] is True

        dentro = regla.validar_valor(4, {"proveedor": "Acme Contact"})
        assert dentro["valido"] is False
        assert dentro["mensaje"] == "RAM fuera de rango"
        assert dentro["bloquea_procesamiento"] is True

    def test_regla_inactiva(self):
        assert _regla(activa=False).debe_aplicarse({}) is False

    def test_contadores(self):
        regla = _regla()
        regla.aplicar_regla(4)
        regla.aplicar_regla(16)
        assert (regla.veces_aplicada, regla.veces_fallida) == (2, 1)
        assert regla.ultima_aplicacion is not None

    def test_auto_correccion(self):
        regla = _regla(
            valor_minimo=1,
            valor_maximo=64,
            auto_correccion=True,
            logica_correccion={"tipo": "NORMALIZACION_RAM"},
        )
        resultado = regla.validar_valor("8192 MB")
        assert resultado["valido"] is True
        assert resultado["valor_corregido"] == 8

    @pytest.mark.parametrize(
        "operador, esperado, valor, ok",
        [
            ("CONTAINS", "ssd", "SSD 512GB", True),
            ("NOT_IN", ["HDD"], "SSD", True),
            ("REGEX", r"^PC-", "PC-LIMA-01", True),
            ("GREATER_THAN", 3, "3", False),
            ("LESS_EQUAL", 3, 3, True),
        ],
    )
    def test_comparar(self, operador, esperado, valor, ok):
        regla = _regla(tipo_validacion="CUSTOM", operador=operador, valor_esperado=esperado)
        assert regla.comparar(valor) is ok

    def test_operador_desconocido_cuenta_como_fallo(self):
        regla = _regla(tipo_validacion="CUSTOM", operador="XOR", valor_esperado=3)
        with pytest.raises(ValueError):
            regla.aplicar_regla(5)
        assert (regla.veces_aplicada, regla.veces_fallida) == (1, 1)

    def test_umbral_por_atencion_persistido(self):
        regla = ValidationRule(**RAM_POR_ATENCION.as_rule_kwargs())
        assert regla.validar_valor(6, {"atencion": "SOPORTE"})["valido"] is False
        assert regla.validar_valor(8, {"atencion": "SOPORTE"})["valido"] is True
        assert regla.validar_valor(4, {"atencion": "INBOUND"})["valido"] is True

    def test_ram_minima_windows(self):
        regla = _regla(codigo_regla="RAM_MINIMA_WINDOWS", tipo_validacion="BUSINESS")
        assert regla.validar_valor(2, {"os_name": "Windows 10"})["valido"] is False
        assert regla.validar_valor(2, {"os_name": "Ubuntu"})["valido"] is True


class TestValidationRuleService:
    def test_crear_reglas_es_idempotente(self, db):
        creadas = svc.crear_reglas_por_defecto(db, usuario_id="admin")
        assert len(creadas) == 16
        assert all(r.creado_por == "admin" for r in creadas)
        assert svc.crear_reglas_por_defecto(db) == []
        assert db.query(ValidationRule).count() == 16

    def test_crear_regla(self, db):
        data = {
            "nombre": "Hostname corporativo",
            "codigo_regla": "HOSTNAME_CORPORATIVO",
            "campo_objetivo": "hostname",
            "tipo_validacion": "PATTERN",
            "operador": "REGEX",
            "valor_esperado": r"^PC-",
            "severidad": "WARNING",
            "mensaje_error": "Hostname fuera de la nomenclatura",
            "categoria": "IDENTIFICACION",
        }
        regla = svc.crear_regla(db, data, usuario_id="admin")

        assert regla.id is not None
        assert regla.creado_por == "admin"
        assert regla.validar_valor("PC-LIMA-01")["valido"] is True
        with pytest.raises(ValueError, match="Ya existe"):
            svc.crear_regla(db, data)

    @pytest.mark.parametrize(
        "campo, valor",
        [
            ("tipo_validacion", "MAGIA"),
            ("categoria", "FINANZAS"),
            ("operador", "XOR"),
            ("logica_correccion", {"tipo": "ADIVINAR"}),
        ],
    )
    def test_crear_regla_fuera_de_catalogo(self, db, campo, valor):
        data = {
            "nombre": "X",
            "codigo_regla": "X",
            "campo_objetivo": "ram_gb",
            "tipo_validacion": "RANGE",
            "mensaje_error": "x",
            "categoria": "HARDWARE",
            campo: valor,
        }
        with pytest.raises(ValueError, match=campo):
            svc.crear_regla(db, data)
        assert db.query(ValidationRule).count() == 0

    def test_reglas_para_campo(self, db):
        svc.crear_reglas_por_defecto(db)

        ram = [r.codigo_regla for r in svc.obtener_reglas_para_campo(db, "ram_gb")]
        assert ram == ["RAM_MINIMA_ATENCION", "RAM_MINIMA_PORTAL", "RAM_MINIMA_WINDOWS"]

        cpu = [r.codigo_regla for r in svc.obtener_reglas_para_campo(db, "cpu_speed_ghz")]
        assert cpu == ["CPU_I5_VELOCIDAD", "CPU_RYZEN5_VELOCIDAD", "CPU_MINIMA_PERFORMANCE"]

    def test_aplicar_reglas(self, db):
        svc.crear_reglas_por_defecto(db)
        record = {"ram_gb": 4, "atencion": "SOPORTE", "os_name": "Windows 11"}

        fallidas = svc.aplicar_reglas(db, record, campos=["ram_gb"])

        assert [f["regla_aplicada"] for f in fallidas] == ["RAM_MINIMA_ATENCION", "RAM_MINIMA_PORTAL"]
        windows = db.query(ValidationRule).filter_by(codigo_regla="RAM_MINIMA_WINDOWS").one()
        assert (windows.veces_aplicada, windows.veces_fallida) == (1, 0)

    def test_corregir_registros(self, db):
        svc.crear_reglas_por_defecto(db)
        records = [
            {"ram_gb": "2 GB", "os_name": "Windows 10"},
            {"ram_gb": 16, "os_name": "Windows 10"},
        ]

        assert svc.corregir_registros(db, records) == 1
        assert records[0]["ram_gb"] == 4
        assert records[0]["informacion"][0]["regla"] == "RAM_MINIMA_WINDOWS"
        assert "informacion" not in records[1]

    def test_corregir_sin_catalogo(self, db):
        assert svc.corregir_registros(db, [{"ram_gb": "2 GB"}]) == 0

    def test_estadisticas(self, db):
        svc.crear_reglas_por_defecto(db)
        stats = svc.obtener_estadisticas(db)
        assert stats["total_reglas"] == 16
        assert stats["reglas_activas"] == 16
        assert stats["por_categoria"] == {"HARDWARE": 10, "SOFTWARE": 2, "CONECTIVIDAD": 4}
        assert sum(stats["por_severidad"].values()) == 16

"""Pruebas del validador de esquema, las reglas de negocio y las políticas de cumplimiento."""

import pytest

from parque_etl.models.validation_rule import ValidationRule
from parque_etl.utils.constants import TIPOS_ATENCION
from parque_etl.validators.business_rules import (
    DEFAULT_RULES,
    BusinessRule,
    BusinessRulesValidator,
    score_from_counts,
)
from parque_etl.validators.policy import (
    RAM_POLICY,
    RAM_POR_ATENCION,
    STORAGE_POLICY,
    PolicyRule,
    all_policy_rules,
    evaluate_policy,
)
from parque_etl.validators.schema_validator import SCHEMA, SchemaValidator


@pytest.fixture
def registro():
    """Registro normalizado sin observaciones de esquema ni de negocio."""
    return {
        "audit_id": "AUDIT_20250310",
        "audit_date": "2025-03-10",
        "audit_cycle": "2025-S1",
        "audit_version": "1",
        "proveedor": "Acme Contact",
        "sitio": "Lima",
        "atencion": "INBOUND",
        "usuario_id": "U001",
        "hostname": "PC-LIMA-01",
        "cpu_brand": "Intel",
        "cpu_speed_ghz": 3.0,
        "ram_gb": 8,
        "ram_type": "DDR4",
        "disk_type": "SSD",
        "disk_capacity_gb": 500,
        "os_name": "Windows 11",
        "browser_name": "Chrome",
        "browser_version": "118",
        "antivirus_brand": "ESET",
        "headset_brand": "Jabra",
        "speed_download_mbps": 50.0,
        "speed_upload_mbps": 20.0,
    }


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


class TestSchemaValidator:
    def test_registro_valido(self, registro):
        report = SchemaValidator().validate(registro)
        assert report.errores == []
        assert report.advertencias == []

    def test_requeridos(self):
        report = SchemaValidator().validate({})
        campos = {e["campo"] for e in report.errores}
        assert campos == {
            "audit_id", "audit_date", "audit_cycle", "audit_version",
            "proveedor", "sitio", "atencion", "usuario_id",
        }
        assert all(e["tipo"] == "required" and e["severidad"] == "error" for e in report.errores)

    def test_tipo_incorrecto_depende_de_strict_mode(self, registro):
        registro["ram_gb"] = "ocho"
        laxo = SchemaValidator().validate(registro)
        estricto = SchemaValidator().validate(registro, strict_mode=True)
        assert [w["tipo"] for w in laxo.advertencias] == ["type_mismatch"]
        assert laxo.errores == []
        assert [e["tipo"] for e in estricto.errores] == ["type_mismatch"]

    def test_rango_enum_patron_y_longitud(self, registro):
        registro.update(
            ram_gb=0,
            atencion="VIP",
            audit_cycle="2025-S3",
            hostname="X" * 101,
        )
        report = SchemaValidator().validate(registro)
        errores = {(e["campo"], e["tipo"]) for e in report.errores}
        advertencias = {(w["campo"], w["tipo"]) for w in report.advertencias}
        assert errores == {("ram_gb", "min_value"), ("audit_cycle", "pattern_mismatch")}
        assert advertencias == {("atencion", "invalid_enum"), ("hostname", "max_length")}

    def test_reporte_de_calidad(self, registro):
        con_aviso = dict(registro, usuario_id="U002", atencion="VIP")
        validator = SchemaValidator()
        resultados = validator.validate_batch([registro, con_aviso])

        stats = resultados["estadisticas"]
        assert (stats["registros_validos"], stats["registros_con_advertencias"]) == (1, 1)

        reporte = validator.generar_reporte_calidad(resultados)
        assert reporte["resumen"]["score_calidad"] == 75
        assert reporte["campos_problematicos"] == [{"campo": "atencion", "frecuencia": 1}]

    def test_schema_info(self):
        info = SchemaValidator().get_schema_info()
        assert info["total_campos"] == len(SCHEMA)
        assert set(info["campos_requeridos"]) == {
            "audit_id", "audit_date", "audit_cycle", "audit_version",
            "proveedor", "sitio", "atencion", "usuario_id",
        }
        assert len(info["campos_requeridos"]) + len(info["campos_opcionales"]) == len(SCHEMA)
        assert info["campos_enum"]["atencion"] == list(TIPOS_ATENCION)
        assert info["tipos_de_datos"]["date"] == 1


# ---------------------------------------------------------------------------
# Business rules
# ---------------------------------------------------------------------------


class TestBusinessRules:
    def test_rules_info(self):
        info = BusinessRulesValidator().get_rules_info()
        assert len(info) == len(DEFAULT_RULES)
        assert info[0] == {
            "name": "ram_minima_requirement",
            "description": "RAM mínima requerida según tipo de atención",
            "categoria": "hardware",
        }

    def test_registro_conforme(self, registro):
        report = BusinessRulesValidator().validate(registro)
        assert report.total_problemas == 0
        assert report.score_validacion == 100

    def test_ram_segun_atencion(self, registro):
        registro.update(atencion="SOPORTE", ram_gb=4)
        report = BusinessRulesValidator().validate(registro)
        assert len(report.errores) == 1
        error = report.errores[0]
        assert error["regla"] == "ram_minima_requirement"
        assert error["mensaje"] == "RAM insuficiente: 4GB. Mínimo requerido para SOPORTE: 8GB"
        assert error["accion_sugerida"] == "Upgrade de memoria a mínimo 8GB"
        assert report.score_validacion == 85

    def test_windows_81_es_advertencia_y_windows_7_error(self, registro):
        registro.update(os_name="Otro", os_version="Windows 8.1")
        report = BusinessRulesValidator().validate(registro)
        assert [w["regla"] for w in report.advertencias] == ["os_compatibility"]
        assert report.score_validacion == 95

        registro["os_version"] = "Windows 7"
        report = BusinessRulesValidator().validate(registro)
        assert [e["regla"] for e in report.errores] == ["os_compatibility"]

    def test_internet_explorer(self, registro):
        registro.update(browser_name="Internet Explorer", browser_version="11")
        report = BusinessRulesValidator().validate(registro)
        assert report.errores[0]["mensaje"] == "Internet Explorer no es compatible con aplicaciones modernas"

    def test_defender_es_informativo(self, registro):
        registro["antivirus_brand"] = "Windows Defender"
        report = BusinessRulesValidator().validate(registro)
        assert [i["regla"] for i in report.informacion] == ["antivirus_requirement"]
        assert report.score_validacion == 100

    def test_headset_y_omision(self, registro):
        registro["headset_brand"] = None
        validator = BusinessRulesValidator()
        assert [e["regla"] for e in validator.validate(registro).errores] == ["headset_requirement"]
        assert validator.validate(registro, skip_validation=["headset_requirement"]).errores == []

    def test_cpu_lenta_es_advertencia(self, registro):
        registro["cpu_speed_ghz"] = 1.8
        report = BusinessRulesValidator().validate(registro)
        assert report.errores == []
        advertencia = report.advertencias[0]
        assert (advertencia["regla"], advertencia["campo"]) == ("cpu_performance_requirement", "cpu_speed_ghz")
        assert advertencia["mensaje"] == (
            "CPU por debajo del rendimiento recomendado: 1.8GHz. Mínimo recomendado: 2.0GHz"
        )
        assert report.score_validacion == 95

    def test_cpu_de_un_nucleo(self, registro):
        registro["cpu_cores"] = 1
        report = BusinessRulesValidator().validate(registro)
        assert [w["campo"] for w in report.advertencias] == ["cpu_cores"]
        assert report.advertencias[0]["impacto"] == "Multitarea limitada"

    def test_navegador_bajo_version_minima(self, registro):
        registro["browser_version"] = "80.0.3987"
        report = BusinessRulesValidator().validate(registro)
        assert [w["campo"] for w in report.advertencias] == ["browser_version"]
        assert report.advertencias[0]["mensaje"] == (
            "Versión de Chrome desactualizada: v80. Mínima recomendada: v90"
        )

        registro["browser_version"] = "90"
        assert BusinessRulesValidator().validate(registro).advertencias == []

    def test_sin_antivirus_es_error(self, registro):
        registro["antivirus_brand"] = None
        report = BusinessRulesValidator().validate(registro)
        assert [e["mensaje"] for e in report.errores] == ["No se detectó antivirus instalado"]
        assert report.score_validacion == 85

    def test_antivirus_desactualizado(self, registro):
        validator = BusinessRulesValidator()
        registro["antivirus_updated"] = None
        assert validator.validate(registro).advertencias == []

        registro["antivirus_updated"] = False
        report = validator.validate(registro)
        assert [(w["regla"], w["campo"]) for w in report.advertencias] == [
            ("antivirus_requirement", "antivirus_updated")
        ]
        assert report.advertencias[0]["accion_sugerida"] == "Actualizar definiciones de antivirus"

    def test_conectividad_segun_atencion(self, registro):
        # CHAT exige 20/10 Mbps; el registro base (50/20) cumple
        registro["atencion"] = "CHAT"
        validator = BusinessRulesValidator()
        assert validator.validate(registro).errores == []

        registro["speed_download_mbps"] = 15.0
        error = validator.validate(registro).errores[0]
        assert (error["regla"], error["campo"]) == ("connectivity_requirement", "speed_download_mbps")
        assert error["accion_sugerida"] == "Upgrade de plan de internet a mínimo 20Mbps bajada"

        registro.update(speed_download_mbps=25.0, speed_upload_mbps=8.0)
        error = validator.validate(registro).errores[0]
        assert error["campo"] == "speed_upload_mbps"
        assert error["accion_sugerida"] == "Upgrade de plan de internet a mínimo 10Mbps subida"

        registro["atencion"] = "INBOUND"
        assert validator.validate(registro).errores == []

    def test_velocidades_no_informadas(self, registro):
        registro["speed_upload_mbps"] = None
        report = BusinessRulesValidator().validate(registro)
        assert [w["mensaje"] for w in report.advertencias] == ["Velocidades de internet no especificadas"]

    def test_disco_pequeno_es_error(self, registro):
        registro["disk_capacity_gb"] = 64
        report = BusinessRulesValidator().validate(registro)
        assert [e["mensaje"] for e in report.errores] == [
            "Capacidad de disco insuficiente: 64GB. Mínimo requerido: 100GB"
        ]

    def test_hdd_pequeno_es_advertencia(self, registro):
        registro.update(disk_type="HDD", disk_capacity_gb=200)
        report = BusinessRulesValidator().validate(registro)
        assert report.errores == []
        assert [(w["regla"], w["campo"]) for w in report.advertencias] == [
            ("disk_space_requirement", "disk_type")
        ]

        registro["disk_capacity_gb"] = 500
        assert BusinessRulesValidator().validate(registro).advertencias == []

    def test_completitud_de_datos(self, registro):
        registro.update(sitio="", atencion=None)
        report = BusinessRulesValidator().validate(registro)
        assert len(report.errores) == 1
        error = report.errores[0]
        assert (error["regla"], error["campo"]) == ("data_completeness", "sitio")
        assert error["mensaje"] == "Campos requeridos faltantes: sitio, atencion"

    def test_score_baja_con_cada_hallazgo(self, registro):
        validator = BusinessRulesValidator()
        base = validator.validate(registro).score_validacion

        registro["cpu_speed_ghz"] = 1.8
        con_advertencia = validator.validate(registro).score_validacion
        registro["antivirus_brand"] = None
        con_error = validator.validate(registro).score_validacion

        assert (base, con_advertencia, con_error) == (100, 95, 80)

    def test_regla_que_falla_se_convierte_en_advertencia(self):
        rota = BusinessRule("explota", "Regla rota", "hardware", lambda r: 1 / 0)
        report = BusinessRulesValidator(rules=[rota]).validate({})
        assert report.errores == []
        assert len(report.advertencias) == 1
        assert report.advertencias[0]["mensaje"].startswith("Error interno validando")
        assert report.score_validacion == 95

    def test_score_con_piso_en_cero(self):
        assert score_from_counts(2, 3) == 55
        assert score_from_counts(7, 0) == 0

    def test_recomendacion_por_frecuencia(self, registro):
        registros = [dict(registro, usuario_id=f"U{i}", atencion="SOPORTE", ram_gb=4) for i in range(5)]
        validator = BusinessRulesValidator()
        reporte = validator.generar_reporte(validator.validate_batch(registros))
        assert reporte["resumen"]["total_errores"] == 5
        assert reporte["problemas_frecuentes"][0] == {"regla": "ram_minima_requirement", "frecuencia": 5}
        assert [r["tipo"] for r in reporte["recomendaciones"]] == ["hardware"]


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


class TestPolicy:
    def test_tipo_desconocido(self):
        with pytest.raises(ValueError):
            PolicyRule(codigo="X", tipo="MAGIC", campo="x", mensaje="x")

    def test_umbral_por_contexto(self):
        assert RAM_POR_ATENCION.umbral({"atencion": "CHAT"}) == 6
        assert RAM_POR_ATENCION.umbral({"atencion": "OTRA"}) == 4

    def test_se_detiene_en_el_primer_fallo(self):
        cumple, razon = evaluate_policy(STORAGE_POLICY, {"disk_capacity_gb": 250, "disk_type": "HDD"})
        assert cumple is False
        assert razon == "Capacidad insuficiente: 250 GB (requiere 500 GB o más)"

    def test_valor_ausente(self):
        assert evaluate_policy(RAM_POLICY, {}) == (
            False,
            "Capacidad insuficiente: Desconocida (requiere 16 GB o más)",
        )

    def test_politica_vacia_siempre_cumple(self):
        assert evaluate_policy((), {}) == (True, "")

    def test_codigos_unicos(self):
        codigos = [r.codigo for r in all_policy_rules()]
        assert len(codigos) == len(set(codigos))

    def test_equivalencia_con_regla_persistida(self):
        regla = ValidationRule(**RAM_POLICY[0].as_rule_kwargs())
        assert regla.tipo_validacion == "RANGE"
        assert regla.validar_valor(8)["valido"] is False
        assert regla.validar_valor(16)["valido"] is True

    def test_umbral_de_negocio_persistido(self):
        kwargs = RAM_POR_ATENCION.as_rule_kwargs()
        assert kwargs["tipo_validacion"] == "BUSINESS"
        assert kwargs["valor_esperado"]["umbrales"]["SOPORTE"] == 8
        assert kwargs["campos_dependientes"] == ["atencion"]

"""Pruebas de los normalizadores de procesador, memoria, disco y categóricos."""

import pytest

from parque_etl.normalizers.base import NormalizationResult, never_raises, round_half_up
from parque_etl.normalizers.categorical import (
    normalize_antivirus,
    normalize_architecture,
    normalize_atencion,
    normalize_boolean,
    normalize_browser_name,
    normalize_cpu_brand,
    normalize_disk_type,
    normalize_headset_type,
    normalize_integer,
    normalize_os,
    normalize_os_name,
    normalize_ram_type,
    normalize_speed_mbps,
)
from parque_etl.normalizers.memory import normalize_ram
from parque_etl.normalizers.processor import normalize_processor
from parque_etl.normalizers.storage import normalize_storage


class TestProcessor:
    def test_i5_lento_no_cumple_por_velocidad(self):
        r = normalize_processor("Intel(R) Core(TM) i5-8400 @ 2.80GHz")
        assert r.brand == "Intel"
        assert r.model == "Core i5"
        assert r.model_number == "8400"
        assert r.generation == 8
        assert r.speed_value == 2.8
        assert r.meets_requirements is False
        assert r.reason == "Velocidad insuficiente: 2.8 GHz (requiere 3.0 GHz o superior)"

    def test_i5_generacion_antigua(self):
        r = normalize_processor("Intel Core i5-7500 3.4GHz")
        assert r.generation == 7
        assert r.reason == "Generación insuficiente: 7 Gen (requiere 8va Gen o superior)"

    def test_ryzen_7_siempre_cumple(self):
        r = normalize_processor("AMD Ryzen 7 3700X")
        assert (r.brand, r.model, r.model_number) == ("AMD", "Ryzen 7", "3700X")
        assert r.architecture == "Alto rendimiento"
        assert r.meets_requirements is True
        assert r.reason == ""

    def test_ryzen_5_bajo_umbral(self):
        r = normalize_processor("AMD Ryzen 5 3600 3.6GHz")
        assert r.meets_requirements is False
        assert r.reason == "Velocidad insuficiente: 3.6 GHz (requiere 3.7 GHz o superior)"

    @pytest.mark.parametrize("texto", ["Xeon E5-2680v4 @ 2.4GHz", "Intel Xeon E5-2680 v4 @ 2.4GHz"])
    def test_xeon_con_version_pegada_o_separada(self, texto):
        r = normalize_processor(texto)
        assert (r.brand, r.model, r.model_number) == ("Intel", "Xeon", "E5-2680 v4")
        assert r.normalized == "Intel Xeon E5-2680 v4 @ 2.4 GHz"
        assert r.meets_requirements is True

    def test_xeon_v2_no_cumple(self):
        r = normalize_processor("Xeon E5-2670v2")
        assert r.model_number == "E5-2670 v2"
        assert r.meets_requirements is False
        assert r.reason == "Se requiere Xeon E5 v3+ o serie Gold/Silver/Bronze/Platinum"

    def test_familia_fuera_de_politica(self):
        r = normalize_processor("Celeron N4020")
        assert (r.brand, r.model) == ("Intel", "Celeron")
        assert r.reason == "Procesador no cumple especificaciones mínimas: Intel Celeron"

    @pytest.mark.parametrize("vacio", [None, "", "   ", float("nan")])
    def test_vacio(self, vacio):
        r = normalize_processor(vacio)
        assert r.brand == "Desconocido"
        assert r.meets_requirements is False
        assert r.reason == "Datos de procesador no válidos"
        assert r.error is None


class TestMemory:
    def test_megabytes(self):
        r = normalize_ram("4096 MB")
        assert r.capacity_gb == 4
        assert r.type == "DDR"
        assert r.normalized == "4 GB"
        assert r.reason == "Capacidad insuficiente: 4 GB (requiere 16 GB o más)"

    def test_tipo_y_frecuencia(self):
        r = normalize_ram("8GB DDR4 2666MHz")
        assert (r.capacity_gb, r.type, r.speed_mhz) == (8, "DDR4", 2666)
        assert r.normalized == "8 GB DDR4 2666 MHz"

    def test_numero_suelto_y_minimo_comercial(self):
        assert normalize_ram("16").meets_requirements is True
        assert normalize_ram("2 GB").capacity_gb == 4

    def test_vacio(self):
        r = normalize_ram("")
        assert r.capacity_gb == 0
        assert r.reason == "Datos de memoria no válidos"


class TestStorage:
    def test_errata_tr(self):
        r = normalize_storage("1 TR")
        assert r.capacity_gb == 1000
        assert r.type == "Desconocido"
        assert r.normalized == "1 TB"
        assert r.meets_requirements is False
        assert r.reason == "Se requiere SSD pero se detectó otro tipo de almacenamiento"

    def test_ssd_pequeno(self):
        r = normalize_storage("SSD 256GB")
        assert (r.capacity_gb, r.type) == (250, "SSD")
        assert r.reason == "Capacidad insuficiente: 250 GB (requiere 500 GB o más)"

    def test_hdd_en_terabytes(self):
        r = normalize_storage("HDD 2TB")
        assert (r.capacity_gb, r.type) == (2000, "HDD")
        assert r.normalized == "2 TB HDD"

    def test_ssd_conforme(self):
        r = normalize_storage("SSD 512GB")
        assert r.capacity_gb == 500
        assert r.meets_requirements is True

    @pytest.mark.parametrize("texto", ["SSD 900 GB", "SSD 950 GB", "SSD 1125 GB"])
    def test_banda_de_un_terabyte(self, texto):
        r = normalize_storage(texto)
        assert r.capacity_gb == 1000
        assert r.normalized == "1 TB SSD"


@pytest.mark.parametrize(
    "normalizer, valor",
    [
        (normalize_processor, "Intel(R) Core(TM) i5-8400 @ 2.80GHz"),
        (normalize_processor, "Intel Core i7-10700 @ 2.90GHz"),
        (normalize_processor, "AMD Ryzen 7 3700X"),
        (normalize_processor, "Celeron N4020"),
        (normalize_ram, "4096 MB"),
        (normalize_ram, "8GB DDR4 2666MHz"),
        (normalize_storage, "1 TR"),
        (normalize_storage, "SSD 256GB"),
        (normalize_storage, "HDD 2TB"),
    ],
)
def test_idempotencia(normalizer, valor):
    """Normalizar la salida normalizada no cambia el resultado."""
    primero = normalizer(valor)
    segundo = normalizer(primero.normalized)
    assert segundo.normalized == primero.normalized
    assert segundo.meets_requirements == primero.meets_requirements


class TestCategorical:
    def test_os_actual(self):
        r = normalize_os("Windows 11 Pro 64 bits")
        assert (r.name, r.architecture) == ("Windows 11", "x64")
        assert r.meets_requirements is True

    def test_os_legado_conserva_etiqueta(self):
        r = normalize_os("Windows 8.1")
        assert r.name == "Otro"
        assert r.version == "Windows 8.1"
        assert r.reason == "Se requiere Windows 11"

    def test_os_legado_es_idempotente(self):
        primero = normalize_os("Windows 7 Pro")
        segundo = normalize_os(primero.normalized)
        assert primero.normalized == "Windows 7"
        assert (segundo.normalized, segundo.name, segundo.version) == ("Windows 7", "Otro", "Windows 7")
        assert segundo.meets_requirements is primero.meets_requirements is False

    @pytest.mark.parametrize(
        "valor, esperado",
        [("Entrante", "INBOUND"), ("Soporte técnico", "SOPORTE"), ("algo raro", "MIXTO"), ("", None)],
    )
    def test_atencion(self, valor, esperado):
        assert normalize_atencion(valor) == esperado

    def test_velocidad(self):
        assert normalize_speed_mbps("1 Gbps") == 1000.0
        assert normalize_speed_mbps("50") == 50.0
        assert normalize_speed_mbps(None) is None

    @pytest.mark.parametrize(
        "normalizer, valor, esperado",
        [
            (normalize_cpu_brand, "Intel Core i5-10400", "Intel"),
            (normalize_cpu_brand, "Ryzen 5 5600G", "AMD"),
            (normalize_cpu_brand, "Qualcomm Snapdragon", "Otro"),
            (normalize_ram_type, "8GB DDR4 3200", "DDR4"),
            (normalize_ram_type, "memoria", "DDR"),
            (normalize_disk_type, "NVMe 1TB", "NVMe"),
            (normalize_disk_type, "Disco duro 1TB", "HDD"),
            (normalize_disk_type, "xyz", "Desconocido"),
            (normalize_architecture, "64 bits", "x64"),
            (normalize_architecture, "32 bits", "x86"),
            (normalize_architecture, "ARM64", "ARM64"),
            (normalize_os_name, "Ubuntu 22.04", "Linux"),
            (normalize_os_name, "Windows 10 Pro", "Windows 10"),
            (normalize_os_name, "", None),
            (normalize_headset_type, "Auricular USB Logitech", "USB"),
            (normalize_browser_name, "IE 11", "Internet Explorer"),
            (normalize_browser_name, "Google Chrome", "Chrome"),
        ],
    )
    def test_vocabularios(self, normalizer, valor, esperado):
        assert normalizer(valor) == esperado

    def test_antivirus(self):
        assert normalize_antivirus("Defender") == "Windows Defender"
        assert normalize_antivirus("panda cloud") == "Panda Cloud"
        assert normalize_antivirus("ninguno") is None

    @pytest.mark.parametrize(
        "valor, esperado",
        [("Sí", True), ("yes", True), ("1", True), (True, True), ("NO", False), ("0", False), ("tal vez", None), (None, None)],
    )
    def test_booleano_de_tres_estados(self, valor, esperado):
        assert normalize_boolean(valor) is esperado

    def test_entero_con_limites(self):
        assert normalize_integer("4 núcleos") == 4
        assert normalize_integer("2,6") == 3
        assert normalize_integer("12", maximo=8) == 8
        assert normalize_integer("-3", minimo=0) == 0
        assert normalize_integer("n/a") is None


def test_redondeo_como_hoja_de_calculo():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.125, 2) == 0.13


def test_never_raises_devuelve_resultado_desconocido():
    @never_raises(lambda original: NormalizationResult(original=original))
    def _explota(value):
        raise RuntimeError("boom")

    r = _explota(" x ")
    assert r.original == "x"
    assert r.normalized == "Desconocido"
    assert r.error == "RuntimeError: boom"
    assert r.reason == "Error en procesamiento"

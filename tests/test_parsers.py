"""Pruebas del mapeo de columnas y del parser de inventarios (Excel / CSV)."""

import pandas as pd
import pytest

from parque_etl.exceptions import ColumnMappingError
from parque_etl.parsers.column_mapper import LOGICAL_FIELDS, map_columns
from parque_etl.parsers.inventario_parser import InventarioParser


class TestColumnMapper:
    def test_encabezado_estandar(self, encabezados):
        m = map_columns(encabezados)
        assert m["proveedor"] == "Proveedor"
        assert m["atencion"] == "Atención"
        assert m["usuario_id"] == "Usuario"
        assert m["hostname"] == "Hostname"
        assert m["processor"] == "Procesador"
        assert m["storage"] == "Disco"
        assert m["os"] == "Sistema Operativo"
        assert m["browser"] == "Navegador"
        assert m["antivirus"] == "Antivirus"
        assert m["headset"] == "Diadema"
        assert m["speed_down"] == "Velocidad Bajada"
        assert m["speed_up"] == "Velocidad Subida"
        assert m.unmapped == [
            "disk_free",
            "antivirus_updated",
            "headset_model",
            "webcam",
            "latency",
            "connection_type",
            "os_build",
        ]
        assert set(m.columns) == set(LOGICAL_FIELDS)

    def test_subida_no_se_toma_como_bajada(self):
        m = map_columns(["Procesador", "Velocidad Subida", "Velocidad Bajada"])
        assert m["speed_up"] == "Velocidad Subida"
        assert m["speed_down"] == "Velocidad Bajada"

    def test_antivirus_actualizado_no_es_la_marca(self):
        m = map_columns(["Procesador", "Antivirus", "Antivirus Actualizado", "Usuario"])
        assert m["antivirus"] == "Antivirus"
        assert m["antivirus_updated"] == "Antivirus Actualizado"
        assert m["usuario_id"] == "Usuario"

    def test_columnas_opcionales_del_equipo(self):
        m = map_columns(
            ["Procesador", "Disco", "Espacio Libre", "Diadema", "Modelo Diadema", "Cámara", "Ping", "Build"]
        )
        assert m["storage"] == "Disco"
        assert m["disk_free"] == "Espacio Libre"
        assert m["headset"] == "Diadema"
        assert m["headset_model"] == "Modelo Diadema"
        assert (m["webcam"], m["latency"], m["os_build"]) == ("Cámara", "Ping", "Build")

    def test_un_encabezado_solo_llena_un_campo(self):
        """'Hostname' contiene 'os' pero no debe convertirse en la columna de SO."""
        m = map_columns(["Hostname", "Procesador"])
        assert m["hostname"] == "Hostname"
        assert m["os"] is None

    def test_primera_coincidencia_gana(self):
        m = map_columns(["Procesador", "RAM", "Memoria RAM"])
        assert m["ram"] == "RAM"
        assert m.ignored == [("Memoria RAM", "ram")]

    def test_sin_procesador(self):
        with pytest.raises(ColumnMappingError) as exc_info:
            map_columns(["Usuario", "RAM", "Disco"])
        assert exc_info.value.step == "FIELD_DETECTION"

    def test_valor_de_columna_no_mapeada(self, encabezados, fila_conforme):
        m = map_columns(encabezados)
        assert m.value(fila_conforme, "processor") == "Intel Core i7-10700 @ 2.90GHz"
        assert m.value(fila_conforme, "connection_type") is None


class TestInventarioParser:
    def test_excel(self, tmp_path, fila_conforme, fila_no_conforme):
        ruta = tmp_path / "inventario.xlsx"
        pd.DataFrame([fila_conforme, fila_no_conforme]).to_excel(ruta, index=False)

        parser = InventarioParser(ruta)
        result = parser.parse()

        assert result.ok, result.errors
        assert parser.tipo_archivo == "EXCEL"
        assert result.record_count == 2
        assert result.metadata["header_row"] == 1
        assert result.metadata["filas"] == [2, 3]
        assert result.records[0]["Procesador"] == "Intel Core i7-10700 @ 2.90GHz"
        assert parser.mapping["processor"] == "Procesador"

    def test_csv_desde_bytes_omite_filas_vacias(self, encabezados, fila_conforme, fila_no_conforme):
        vacia = {h: None for h in encabezados}
        contenido = pd.DataFrame([fila_conforme, vacia, fila_no_conforme]).to_csv(index=False).encode("utf-8")

        parser = InventarioParser(contenido, filename="inventario.csv")
        result = parser.parse()

        assert result.ok, result.errors
        assert parser.tipo_archivo == "CSV"
        assert result.record_count == 2
        assert result.metadata["skipped_rows"] == 1
        assert result.records[1]["Usuario"] == "U002"

    def test_sin_columna_de_procesador(self, tmp_path):
        ruta = tmp_path / "sin_cpu.xlsx"
        pd.DataFrame([{"Usuario": "U1", "RAM": "8 GB"}]).to_excel(ruta, index=False)

        parser = InventarioParser(ruta)
        result = parser.parse()

        assert not result.ok
        assert isinstance(parser.mapping_error, ColumnMappingError)

    def test_formato_no_soportado(self):
        parser = InventarioParser(b"%PDF-1.4", filename="inventario.pdf")
        result = parser.parse()
        assert not result.ok
        assert "Formato de archivo no soportado" in result.errors[0]

    def test_xls_heredado_no_soportado(self):
        parser = InventarioParser(b"\xd0\xcf\x11\xe0", filename="inventario.xls")
        result = parser.parse()
        assert not result.ok
        assert result.errors[0] == "Formato de archivo no soportado: inventario.xls"

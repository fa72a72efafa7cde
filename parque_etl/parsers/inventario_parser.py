"""Parser for equipment inventory exports ("parque informático").

Expected layout (first sheet, or the CSV body):
    Optional title rows
    Header row:  Proveedor | Sitio | Atención | Usuario | Hostname |
                 Procesador | RAM | Disco | Sistema Operativo | ...
    Data rows:   one row per workstation

The header row is the first of the top ``_HEADER_SEARCH_ROWS`` rows that
mentions the processor column; without one the first row is assumed.
Columns are not fixed: ``column_mapper.map_columns`` binds them by keyword,
so every record is returned untouched as ``header -> cell text``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, BinaryIO

import pandas as pd

from parque_etl.exceptions import ColumnMappingError
from parque_etl.parsers.base_parser import BaseParser, ParseResult
from parque_etl.parsers.column_mapper import ColumnMapping, map_columns

logger = logging.getLogger(__name__)

_HEADER_SEARCH_ROWS = 10
_HEADER_KEYWORDS = ["procesador", "processor", "cpu"]


class InventarioParser(BaseParser):
    """Parse the first sheet of an inventory workbook (or a CSV export)."""

    FORMAT_NAME = "INVENTARIO"

    def __init__(
        self,
        file_path_or_bytes: str | Path | bytes | BinaryIO,
        filename: str | None = None,
        sheet_name: str | int = 0,
    ) -> None:
        super().__init__(file_path_or_bytes, filename=filename)
        self.sheet_name = sheet_name
        self.mapping: ColumnMapping | None = None
        self.mapping_error: ColumnMappingError | None = None

    def validate_structure(self, df: pd.DataFrame) -> list[str]:
        try:
            self.mapping = map_columns(df.columns)
        except ColumnMappingError as exc:
            self.mapping_error = exc
            return [exc.message]
        return []

    def parse(self) -> ParseResult:
        self.result.format_name = self.FORMAT_NAME

        # 1. Load everything without a header
        raw = self._load_sheet(sheet_name=self.sheet_name, header=None)
        if raw.empty:
            if self.result.ok:
                self.result.errors.append("INVENTARIO: el archivo está vacío.")
            return self.result

        # 2. Detect header row and build unique column names
        header_idx = self._detect_header_row(raw)
        headers = self._unique_headers(raw.iloc[header_idx].tolist())
        df = raw.iloc[header_idx + 1:].copy()
        df.columns = headers

        # 3. Validate structure (column mapping)
        struct_errors = self.validate_structure(df)
        self.result.errors.extend(struct_errors)
        if struct_errors:
            return self.result

        # 4. Iterate rows
        filas: list[int] = []
        skipped = 0
        for row_idx, row in df.iterrows():
            if self._is_empty_row(row):
                skipped += 1
                continue
            if [self._clean_str(v) for v in row.tolist()] == headers:
                self.result.warnings.append(
                    f"Fila {int(row_idx) + 1}: encabezado repetido, omitida."
                )
                skipped += 1
                continue
            self.result.records.append(
                {col: self._clean_str(row[col]) for col in headers}
            )
            # 1-based spreadsheet row number
            filas.append(int(row_idx) + 1)

        self.result.metadata.update({
            "sheet_name": self.sheet_name,
            "header_row": header_idx + 1,
            "headers": headers,
            "filas": filas,
            "skipped_rows": skipped,
            "column_mapping": self.mapping.mapped if self.mapping else {},
            "tipo_archivo": self.tipo_archivo,
        })

        logger.info(
            "InventarioParser: rows=%d skipped=%d header_row=%d",
            len(self.result.records),
            skipped,
            header_idx + 1,
        )
        return self.result

    def _detect_header_row(self, raw: pd.DataFrame) -> int:
        for r in range(min(_HEADER_SEARCH_ROWS, len(raw))):
            if self._is_header_row(raw.iloc[r], _HEADER_KEYWORDS):
                return r
        return 0

    def _unique_headers(self, values: list[Any]) -> list[str]:
        headers: list[str] = []
        seen: dict[str, int] = {}
        for pos, value in enumerate(values):
            name = self._clean_str(value) or f"Unnamed: {pos}"
            if name in seen:
                seen[name] += 1
                name = f"{name}.{seen[name]}"
            else:
                seen[name] = 0
            headers.append(name)
        return headers

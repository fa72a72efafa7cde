"""Inventory spreadsheet parsers package.

Public API
----------
BaseParser        — Abstract base; inherit to create a new format parser.
ParseResult       — Dataclass returned by every ``parser.parse()`` call.
InventarioParser  — First sheet (or CSV body) → list of raw row dicts.
ColumnMapping     — Logical field → source header binding.
map_columns       — Auto-detect the logical fields of a header row.

Usage example::

    from parque_etl.parsers import InventarioParser

    parser = InventarioParser("/path/to/inventario.xlsx")
    result = parser.parse()
    print(result.summary())
    for row in result.records:
        cpu = parser.mapping.value(row, "processor")
"""

from .base_parser import BaseParser, ParseResult
from .column_mapper import LOGICAL_FIELDS, ColumnMapping, map_columns
from .inventario_parser import InventarioParser

__all__: list[str] = [
    "BaseParser",
    "ParseResult",
    "InventarioParser",
    "ColumnMapping",
    "LOGICAL_FIELDS",
    "map_columns",
]

"""Header auto-detection for inventory spreadsheets.

Each logical field owns a list of lower-case fragments.  Headers are scanned
left to right; for every header the fields are tried in ``_FIELD_KEYWORDS``
order and the header is bound to the first unbound field whose fragments it
contains.  Consequences:

- first-match-wins per field: once ``ram`` is bound, later RAM-looking
  headers are ignored, so column order is significant;
- a header binds at most one field, so ``"Hostname"`` does not also become
  the OS column (it contains ``"os"``) and ``"Velocidad"`` does not also
  become the user id (it contains ``"id"``).

Only ``processor`` is mandatory; every other field may stay unmapped.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from parque_etl.exceptions import ColumnMappingError

logger = logging.getLogger(__name__)

# Field -> fragments.  Order is the priority used when one header could match
# several fields.
_FIELD_KEYWORDS: dict[str, list[str]] = {
    "proveedor": ["proveedor", "provider", "supplier"],
    "sitio": ["sitio", "site", "location", "sede"],
    "atencion": ["atencion", "atención", "attention"],
    "hostname": ["hostname", "host", "equipo", "pc"],
    "processor": ["procesador", "processor", "cpu", "micro"],
    "ram": ["ram", "memoria", "memory"],
    "disk_free": [
        "espacio libre",
        "disco libre",
        "espacio disponible",
        "free space",
        "disk free",
        "gb libres",
    ],
    "storage": ["disco", "disk", "hdd", "ssd", "storage", "almacenamiento"],
    "browser": ["navegador", "browser", "explorador"],
    "antivirus_updated": [
        "antivirus actualizado",
        "av actualizado",
        "antivirus updated",
        "definiciones",
        "actualizacion antivirus",
        "actualización antivirus",
    ],
    "antivirus": ["antivirus", "av", "seguridad"],
    "headset_model": ["modelo diadema", "modelo headset", "modelo auricular", "headset model"],
    "headset": ["headset", "diadema", "auricular", "audio"],
    "isp": ["isp", "internet"],
    "webcam": ["webcam", "camara", "cámara", "camera"],
    "latency": ["latencia", "latency", "ping"],
    "connection_type": ["conexion", "conexión", "connection"],
    "speed_down": ["bajada", "descarga", "download", "down", "velocidad", "speed"],
    "speed_up": ["subida", "upload", "up", "velocidad", "speed"],
    "os_build": ["build", "compilacion", "compilación"],
    "os": ["sistema", "os", "operativo", "operating"],
    "usuario_id": ["usuario", "user", "agente", "id"],
}

# Fragments that veto a field even when one of its keywords matched
# ("Velocidad Subida" must not become the download column).
_FIELD_EXCLUDES: dict[str, list[str]] = {
    "speed_down": ["subida", "upload"],
}

MANDATORY_FIELDS: tuple[str, ...] = ("processor",)
LOGICAL_FIELDS: tuple[str, ...] = tuple(_FIELD_KEYWORDS)


@dataclass
class ColumnMapping:
    """Result of ``map_columns``: logical field -> source header (or ``None``).

    Attributes:
        columns: Mapping for every logical field; unmapped fields are ``None``.
        headers: The header row that was inspected, in file order.
        ignored: ``(header, field)`` pairs that matched an already-bound field.
    """

    columns: dict[str, str | None] = field(default_factory=dict)
    headers: list[str] = field(default_factory=list)
    ignored: list[tuple[str, str]] = field(default_factory=list)

    def __getitem__(self, logical_field: str) -> str | None:
        return self.columns.get(logical_field)

    def get(self, logical_field: str) -> str | None:
        return self.columns.get(logical_field)

    @property
    def mapped(self) -> dict[str, str]:
        return {k: v for k, v in self.columns.items() if v is not None}

    @property
    def unmapped(self) -> list[str]:
        return [k for k, v in self.columns.items() if v is None]

    def value(self, row: Mapping[str, Any], logical_field: str) -> Any:
        """Raw cell of ``row`` for a logical field, ``None`` when unmapped."""
        header = self.columns.get(logical_field)
        if header is None:
            return None
        return row.get(header)


def map_columns(headers: Iterable[Any]) -> ColumnMapping:
    """Bind logical fields to the headers of one spreadsheet.

    Args:
        headers: Header row in file order.  Non-string headers are compared
            through ``str()``; blank headers are skipped.

    Returns:
        A ``ColumnMapping``.

    Raises:
        ColumnMappingError: When no header maps to ``processor``.
    """
    mapping = ColumnMapping(columns={name: None for name in _FIELD_KEYWORDS})

    for raw_header in headers:
        if raw_header is None:
            continue
        header = str(raw_header)
        mapping.headers.append(header)
        lower = header.strip().lower()
        if not lower or lower.startswith("unnamed:"):
            continue

        bound = False
        for logical_field, keywords in _FIELD_KEYWORDS.items():
            if not any(keyword in lower for keyword in keywords):
                continue
            if any(veto in lower for veto in _FIELD_EXCLUDES.get(logical_field, ())):
                continue
            if mapping.columns[logical_field] is not None:
                mapping.ignored.append((header, logical_field))
                continue
            if not bound:
                mapping.columns[logical_field] = header
                bound = True

    missing = [name for name in MANDATORY_FIELDS if mapping.columns[name] is None]
    if missing:
        raise ColumnMappingError(
            "No se encontró la columna de procesador. "
            f"Columnas detectadas: {mapping.headers}"
        )

    logger.info(
        "map_columns: %d/%d campos mapeados (sin mapear: %s)",
        len(mapping.mapped),
        len(LOGICAL_FIELDS),
        ", ".join(mapping.unmapped) or "ninguno",
    )
    return mapping

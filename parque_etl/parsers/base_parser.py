"""Abstract base class for inventory spreadsheet parsers.

Provides shared infrastructure for loading workbooks or CSV exports and
normalising cell values before format-specific subclasses do their domain
logic.
"""

from __future__ import annotations

import io
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO

import pandas as pd

logger = logging.getLogger(__name__)

_EXCEL_EXTENSIONS = (".xlsx", ".xlsm")
_CSV_EXTENSIONS = (".csv", ".txt")
_CSV_ENCODINGS = ("utf-8-sig", "latin-1")


# ---------------------------------------------------------------------------
# Result container
# ---------------------------------------------------------------------------


@dataclass
class ParseResult:
    """Container returned by every parser after processing a file.

    Attributes:
        records: One dict per data row, raw column name -> cell text.
        errors: Fatal structural problems (nothing should be processed).
        warnings: Non-fatal oddities (row was kept or skipped on purpose).
        metadata: Context collected while reading (sheet, header row, rows).
        format_name: Detected or assumed format identifier string.
    """

    records: list[dict[str, Any]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    format_name: str = "DESCONOCIDO"

    # ------------------------------------------------------------------
    # Convenience helpers
    # ------------------------------------------------------------------

    @property
    def ok(self) -> bool:
        """True when no fatal errors were collected."""
        return len(self.errors) == 0

    @property
    def record_count(self) -> int:
        """Number of data rows read."""
        return len(self.records)

    def summary(self) -> str:
        """One-line human-readable summary of the parse run."""
        status = "OK" if self.ok else "ERROR"
        return (
            f"[{status}] format={self.format_name} "
            f"records={self.record_count} "
            f"errors={len(self.errors)} "
            f"warnings={len(self.warnings)}"
        )


# ---------------------------------------------------------------------------
# Base parser
# ---------------------------------------------------------------------------


class BaseParser(ABC):
    """Abstract base for spreadsheet parsers.

    Subclasses must implement:
        * ``validate_structure(df)`` — check expected columns / shape.
        * ``parse()``               — extract row records.

    The constructor accepts a file path string, raw bytes, or an open
    binary-mode file object.  ``filename`` decides between the Excel and CSV
    readers; a path source supplies its own name.

    Attributes:
        file_source: The original argument passed to the constructor.
        filename: Name used to pick the reader.
        file_bytes: Raw bytes of the file, kept for re-reading.
        result: Accumulated ``ParseResult`` (populated during ``parse()``).
    """

    FORMAT_NAME: str = "DESCONOCIDO"

    def __init__(
        self,
        file_path_or_bytes: str | Path | bytes | BinaryIO,
        filename: str | None = None,
    ) -> None:
        self.file_source = file_path_or_bytes
        if filename is None and isinstance(file_path_or_bytes, (str, Path)):
            filename = Path(file_path_or_bytes).name
        self.filename: str = filename or ""
        self.file_bytes: bytes = self._read_source(file_path_or_bytes)
        self.result: ParseResult = ParseResult(format_name=self.FORMAT_NAME)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _read_source(source: str | Path | bytes | BinaryIO) -> bytes:
        """Normalise any input type to raw bytes."""
        if isinstance(source, bytes):
            return source
        if isinstance(source, (str, Path)):
            return Path(source).read_bytes()
        pos = getattr(source, "tell", lambda: None)()
        data = source.read()
        if pos is not None:
            try:
                source.seek(pos)
            except (OSError, ValueError) as exc:
                logger.debug("Could not rewind source stream: %s", exc)
        return data if isinstance(data, bytes) else data.encode()

    @property
    def is_csv(self) -> bool:
        return self.filename.lower().endswith(_CSV_EXTENSIONS)

    @property
    def tipo_archivo(self) -> str:
        """``CSV`` or ``EXCEL``, the job vocabulary for the file kind."""
        return "CSV" if self.is_csv else "EXCEL"

    def _open_buffer(self) -> io.BytesIO:
        """Return a BytesIO handle positioned at byte 0."""
        return io.BytesIO(self.file_bytes)

    # ------------------------------------------------------------------
    # Sheet loading
    # ------------------------------------------------------------------

    def _load_sheet(
        self,
        sheet_name: str | int = 0,
        header: int | None = None,
        nrows: int | None = None,
    ) -> pd.DataFrame:
        """Load the data area into a DataFrame with every cell as a string.

        Excel goes through the openpyxl engine; CSV through ``pd.read_csv``
        with delimiter sniffing.  Loading failures are recorded in
        ``self.result.errors`` and an empty DataFrame is returned.

        Args:
            sheet_name: Sheet index (0-based) or exact sheet name (Excel only).
            header: Row index (0-based) to use as column names, or None for
                no header (columns become 0, 1, 2 …).
            nrows: Maximum number of rows to read.

        Returns:
            DataFrame of strings (NaN for blank cells).
        """
        name = self.filename or "<bytes>"
        if self.filename and not self.filename.lower().endswith(
            _EXCEL_EXTENSIONS + _CSV_EXTENSIONS
        ):
            msg = f"Formato de archivo no soportado: {self.filename}"
            logger.error(msg)
            self.result.errors.append(msg)
            return pd.DataFrame()

        if self.is_csv:
            return self._load_csv(header=header, nrows=nrows)

        try:
            return pd.read_excel(
                self._open_buffer(),
                sheet_name=sheet_name,
                header=header,
                nrows=nrows,
                dtype=str,
                engine="openpyxl",
            )
        except Exception as exc:
            msg = f"No se pudo leer la hoja '{sheet_name}' de {name}: {exc}"
            logger.error(msg)
            self.result.errors.append(msg)
            return pd.DataFrame()

    def _load_csv(self, header: int | None, nrows: int | None) -> pd.DataFrame:
        last_exc: Exception | None = None
        for encoding in _CSV_ENCODINGS:
            try:
                return pd.read_csv(
                    self._open_buffer(),
                    header=header,
                    nrows=nrows,
                    dtype=str,
                    sep=None,
                    engine="python",
                    encoding=encoding,
                )
            except UnicodeDecodeError as exc:
                last_exc = exc
                logger.debug("CSV no es %s, reintentando", encoding)
            except Exception as exc:
                last_exc = exc
                break
        msg = f"No se pudo leer el CSV {self.filename or '<bytes>'}: {last_exc}"
        logger.error(msg)
        self.result.errors.append(msg)
        return pd.DataFrame()

    # ------------------------------------------------------------------
    # Value normalisation helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _clean_str(value: Any) -> str:
        """Return a stripped string, converting NaN/None to empty string."""
        if value is None:
            return ""
        if isinstance(value, float) and pd.isna(value):
            return ""
        return str(value).strip()

    # ------------------------------------------------------------------
    # Row-filtering helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _is_empty_row(row: pd.Series) -> bool:
        """True when every non-NaN cell in the row is an empty string."""
        for val in row:
            if BaseParser._clean_str(val):
                return False
        return True

    @staticmethod
    def _is_header_row(row: pd.Series, keywords: list[str]) -> bool:
        """True when the row looks like a (repeated) column header.

        Checks whether any cell contains one of the given keywords
        (case-insensitive substring match).
        """
        for val in row:
            text = BaseParser._clean_str(val).lower()
            for kw in keywords:
                if kw.lower() in text:
                    return True
        return False

    # ------------------------------------------------------------------
    # Abstract interface
    # ------------------------------------------------------------------

    @abstractmethod
    def validate_structure(self, df: pd.DataFrame) -> list[str]:
        """Verify that the DataFrame has the required columns / shape.

        Args:
            df: The main data DataFrame (already loaded by the subclass).

        Returns:
            List of error messages.  Empty list means structure is valid.
        """

    @abstractmethod
    def parse(self) -> ParseResult:
        """Execute the full parsing pipeline and return a ``ParseResult``."""

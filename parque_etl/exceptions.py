"""Exception hierarchy for job-level ETL failures.

Row-level problems never surface as exceptions: they are caught at the row
boundary and recorded in the error ledger.  The classes below are reserved
for conditions that stop a whole job or reject a caller's request.
"""

from __future__ import annotations


class ParqueETLException(Exception):
    """Base class for every error raised by the package.

    Attributes:
        step: ETL step (``PASOS_ETL``) where the failure happened, if known.
    """

    step: str | None = None

    def __init__(self, message: str, step: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if step is not None:
            self.step = step


class ParseError(ParqueETLException):
    """The input file could not be read as a spreadsheet."""

    step = "PARSING"


class ColumnMappingError(ParqueETLException):
    """Header row lacks a column that the pipeline cannot work without."""

    step = "FIELD_DETECTION"


class InvalidJobTransition(ParqueETLException):
    """A job was asked to move backwards or out of a terminal state."""


class RecordNotFound(ParqueETLException):
    """Lookup by primary key returned nothing."""

"""SQLAlchemy models package for the Parque Informático ETL.

Importing all models here ensures that SQLAlchemy's mapper registry is
populated before ``Base.metadata.create_all()`` runs.  The import order
follows the foreign-key dependency graph so that parent tables are always
registered before their children.

Usage from other modules:
    from parque_etl.models import EtlJob, ParqueInformatico
"""

# Job ledger (parent of records and errors)
from parque_etl.models.etl_job import EtlJob  # noqa: F401

# Inventory records
from parque_etl.models.parque_informatico import ParqueInformatico  # noqa: F401

# Error ledger
from parque_etl.models.etl_error import EtlError  # noqa: F401

# Rule catalogue
from parque_etl.models.validation_rule import ValidationRule  # noqa: F401

__all__ = [
    "EtlJob",
    "ParqueInformatico",
    "EtlError",
    "ValidationRule",
]

"""Parque Informático ETL core.

Turns spreadsheet exports of fielded computing equipment into normalised,
validated and scored ``ParqueInformatico`` records while tracking per-file
``EtlJob`` progress and a deduplicated ``EtlError`` ledger.
"""

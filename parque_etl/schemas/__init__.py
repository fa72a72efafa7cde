"""Pydantic response shapes."""

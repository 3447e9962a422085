"""Flat field values for document generation."""

from pfs_engine.export.field_mapper import (
    ExportError,
    FieldMapping,
    build_field_values,
    default_summary_mappings,
    flatten_summaries,
    format_field_value,
    resolve_path,
)

__all__ = [
    "ExportError",
    "FieldMapping",
    "build_field_values",
    "default_summary_mappings",
    "flatten_summaries",
    "format_field_value",
    "resolve_path",
]

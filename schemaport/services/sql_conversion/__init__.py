"""
SQL Conversion Package - retargets a parsed legacy schema to the target dialect.

Main Components:
    - SchemaConverter: SchemaModel -> ConversionResult (ordered statement groups)
    - TypeMapper: rule-driven column type mapping
    - DdlBuilder: sqlglot AST construction and rendering of target DDL
    - MigrationOrchestrator (``.orchestrator``): reads files and writes artifacts

Usage:
    from schemaport.services.sql_conversion.orchestrator import MigrationOrchestrator

    result = MigrationOrchestrator().convert("legacy/store.sql")

The orchestrator is not re-exported here because it depends on the
migrations package, which itself builds on ``SchemaConverter``.
"""

from .converters.ddl_builder import DdlBuilder
from .converters.schema_converter import ConversionResult, SchemaConverter
from .converters.type_mapper import TypeMapper, TypeMapping

__all__ = ['ConversionResult', 'DdlBuilder', 'SchemaConverter', 'TypeMapper', 'TypeMapping']

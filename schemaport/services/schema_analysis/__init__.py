"""
Schema analysis: DDL text in, frozen relational model out.

Usage:
    from schemaport.services.schema_analysis import SchemaAnalyzer

    model = SchemaAnalyzer().parse_schema_from_file("legacy.sql")
    print(model.summary)
"""

from .analyzer import SchemaAnalyzer
from .models import Column, Index, InferenceDiagnostic, Relationship, SchemaModel, SchemaSummary, Table

__all__ = [
    'SchemaAnalyzer',
    'Column',
    'Index',
    'InferenceDiagnostic',
    'Relationship',
    'SchemaModel',
    'SchemaSummary',
    'Table',
]

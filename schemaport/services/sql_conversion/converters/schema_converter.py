"""
SchemaConverter – retargets a SchemaModel to the target dialect.

Produces four ordered statement groups:

* ``create``      – CREATE TABLE (+ COMMENT ON) in parents-first order
* ``index``       – declared indexes plus indexes on foreign-key columns
* ``foreign_key`` – ALTER TABLE ... ADD CONSTRAINT, always after every create
* ``drop``        – DROP TABLE in children-first order

The converter never mutates the model it is given.
"""
from typing import Any, Dict, List, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict

from schemaport.config import config
from schemaport.errors import ConversionError
from schemaport.services.schema_analysis.models import Relationship, SchemaModel, Table
from schemaport.utils.logger import setup_logger

from ..utils.dependency_order import order_tables
from .base_converter import BaseConverter
from .ddl_builder import ColumnSpec, DdlBuilder
from .type_mapper import TypeMapper


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class ConvertedIndex(_Frozen):
    name: str
    statement: str
    drop_statement: str
    foreign_key_index: bool = False


class ConvertedForeignKey(_Frozen):
    constraint_name: str
    statement: str
    drop_statement: str
    origin: str
    self_referential: bool = False


class ConvertedTable(_Frozen):
    source_name: str
    target_name: str
    create_statements: Tuple[str, ...]
    drop_statement: str
    migration_drop_statement: str
    indexes: Tuple[ConvertedIndex, ...] = ()
    foreign_keys: Tuple[ConvertedForeignKey, ...] = ()


class ConversionResult(_Frozen):
    source_dialect: str
    target_dialect: str
    tables: Tuple[ConvertedTable, ...]
    create: Tuple[str, ...]
    foreign_key: Tuple[str, ...]
    index: Tuple[str, ...]
    drop: Tuple[str, ...]
    data_type_conversions: Dict[str, List[str]] = {}
    skipped_implied_edges: Tuple[Tuple[str, str], ...] = ()

    @property
    def table_order(self) -> List[str]:
        return [t.target_name for t in self.tables]

    @property
    def drop_order(self) -> List[str]:
        return [t.target_name for t in reversed(self.tables)]

    @property
    def complete_sql(self) -> str:
        """All statements in safe execution order: drops, creates, indexes, foreign keys."""
        return render_statements(self.drop + self.create + self.index + self.foreign_key)

    def statement_groups(self) -> List[Tuple[str, Tuple[str, ...]]]:
        return [("drop", self.drop), ("create", self.create), ("index", self.index), ("foreign_key", self.foreign_key)]

    def summary(self) -> Dict[str, Any]:
        return {
            "tables_converted": len(self.tables),
            "create_statements": len(self.create),
            "foreign_keys": len(self.foreign_key),
            "indexes": len(self.index),
            "drop_statements": len(self.drop),
            "table_order": self.table_order,
            "data_type_conversions": self.data_type_conversions,
        }


def render_statements(statements) -> str:
    return "".join(f"{stmt.rstrip().rstrip(';')};\n\n" for stmt in statements)


class SchemaConverter(BaseConverter):

    def __init__(
        self,
        source_dialect: Optional[str] = None,
        target_dialect: Optional[str] = None,
        *,
        type_mapper: Optional[TypeMapper] = None,
        ddl_builder: Optional[DdlBuilder] = None,
        manual_review_logger: Optional[Any] = None,
        emit_implied_foreign_keys: Optional[bool] = None,
        index_foreign_key_columns: Optional[bool] = None,
    ):
        super().__init__(source_dialect, target_dialect)
        self.logger = setup_logger('SchemaConverter')
        conversion_cfg = config.get('conversion', {})
        self.type_mapper = type_mapper or TypeMapper(self.source_dialect, self.target_dialect)
        self.ddl_builder = ddl_builder or DdlBuilder(
            self.source_dialect, self.target_dialect, pretty=conversion_cfg.get('pretty_sql', True)
        )
        self.manual_review_logger = manual_review_logger
        self.emit_implied = (
            conversion_cfg.get('emit_implied_foreign_keys', True)
            if emit_implied_foreign_keys is None else emit_implied_foreign_keys
        )
        self.index_fk_columns = (
            conversion_cfg.get('index_foreign_key_columns', True)
            if index_foreign_key_columns is None else index_foreign_key_columns
        )
        fk_cfg = self.ddl_builder.behavior_config.get('foreign_keys', {})
        self.default_on_delete = fk_cfg.get('default_on_delete', 'NO ACTION')
        self.default_on_update = fk_cfg.get('default_on_update', 'NO ACTION')

    def convert_schema(self, model: SchemaModel) -> ConversionResult:
        self.logger.info(f"Converting {len(model.tables)} tables: {self.source_dialect} -> {self.target_dialect}")
        source_file = model.source or "<schema>"
        targets = self._target_names(model)

        explicit_edges = [(r.table, r.referenced_table) for r in model.relationships if r.origin == "explicit"]
        implied_edges = [(r.table, r.referenced_table) for r in model.relationships if r.origin == "implied"]
        order, skipped = order_tables([t.source_name for t in model.tables], explicit_edges, implied_edges)
        for child, parent in skipped:
            self._review(source_file, f"{child} -> {parent}", 'Skipped_relationship_edge',
                         f"Implied relationship {child} -> {parent} would close a cycle; ignored for ordering.")

        for diag in model.diagnostics:
            self._review(source_file, f"{diag.table}.{diag.column}", 'Ambiguous_relationship', diag.message)

        type_conversions: Dict[str, Set[str]] = {}
        # Indexes share the relation namespace with tables; constraint names are kept apart
        used_names = {'relation': set(targets.values()), 'constraint': set()}
        converted: List[ConvertedTable] = []
        for source_name in order:
            table = model.get_table(source_name)
            converted.append(self._convert_table(
                table, model.relationships_for(source_name), targets, type_conversions, source_file, used_names
            ))

        result = ConversionResult(
            source_dialect=self.source_dialect,
            target_dialect=self.target_dialect,
            tables=tuple(converted),
            create=tuple(stmt for t in converted for stmt in t.create_statements),
            index=tuple(ix.statement for t in converted for ix in t.indexes),
            foreign_key=tuple(fk.statement for t in converted for fk in t.foreign_keys),
            drop=tuple(t.drop_statement for t in reversed(converted)),
            data_type_conversions={k: sorted(v) for k, v in sorted(type_conversions.items())},
            skipped_implied_edges=tuple(skipped),
        )
        self.logger.info(
            f"Conversion produced {len(result.create)} create, {len(result.index)} index, "
            f"{len(result.foreign_key)} foreign key and {len(result.drop)} drop statements."
        )
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _review(self, file_path: str, object_name: str, issue_type: str, message: str):
        if self.manual_review_logger is not None:
            self.manual_review_logger.log_manual_review_item(file_path, object_name, issue_type, message)

    @staticmethod
    def _target_names(model: SchemaModel) -> Dict[str, str]:
        owners: Dict[str, str] = {}
        for table in model.tables:
            if not table.target_name:
                raise ConversionError("Table has an empty target name", table=table.source_name)
            if table.target_name in owners:
                raise ConversionError(
                    f"Target name '{table.target_name}' is produced by both '{owners[table.target_name]}' "
                    f"and '{table.source_name}'",
                    table=table.source_name,
                )
            owners[table.target_name] = table.source_name
        return {t.source_name: t.target_name for t in model.tables}

    def _convert_table(
        self,
        table: Table,
        relationships: Tuple[Relationship, ...],
        targets: Dict[str, str],
        type_conversions: Dict[str, Set[str]],
        source_file: str,
        used_names: Dict[str, Set[str]],
    ) -> ConvertedTable:
        target = table.target_name
        specs: List[ColumnSpec] = []
        column_comments: List[Tuple[str, str]] = []

        for column in table.columns:
            mapping = self.type_mapper.map_column(table, column)
            type_conversions.setdefault(" ".join(column.source_type.upper().split()), set()).add(mapping.target_type)
            obj = f"{table.source_name}.{column.name}"
            for note in mapping.notes:
                self._review(source_file, obj, 'Type_widened', note)
            if column.base_type == "SET":
                self._review(source_file, obj, 'Set_type', f"SET column {column.source_type} stored as {mapping.target_type}")
            if column.on_update:
                self._review(source_file, obj, 'ON_UPDATE_clause', f"ON UPDATE {column.on_update} dropped")

            default, note = self.ddl_builder.default_expression(column.default, mapping, table.source_name, column.name)
            if note:
                issue = 'Zero_date_default' if note.startswith('zero-date') else 'Expression_default'
                self._review(source_file, obj, issue, note)

            specs.append(ColumnSpec(
                name=column.name,
                mapping=mapping,
                nullable=column.nullable,
                default=default,
                unique=column.unique,
            ))
            if column.comment:
                column_comments.append((column.name, column.comment))

        if table.timestamps == "partial":
            self._review(source_file, table.source_name, 'Partial_timestamps',
                         f"Table '{table.source_name}' declares only one of created/updated timestamps.")

        create_statements = [self.ddl_builder.create_table(target, specs, table.primary_key)]
        create_statements.extend(self.ddl_builder.comment_statements(target, table.comment, column_comments))

        indexes = self._indexes(table, relationships, used_names['relation'])
        foreign_keys = self._foreign_keys(table, relationships, targets, source_file, used_names['constraint'])

        return ConvertedTable(
            source_name=table.source_name,
            target_name=target,
            create_statements=tuple(create_statements),
            drop_statement=self.ddl_builder.drop_table(target, cascade=True),
            migration_drop_statement=self.ddl_builder.drop_table(target, cascade=False),
            indexes=tuple(indexes),
            foreign_keys=tuple(foreign_keys),
        )

    def _indexes(self, table: Table, relationships: Tuple[Relationship, ...],
                 used_names: Set[str]) -> List[ConvertedIndex]:
        indexes: List[ConvertedIndex] = []
        seen: Set[Tuple[Tuple[str, ...], bool]] = set()
        leading: Set[str] = set()
        if table.primary_key:
            leading.add(table.primary_key[0].lower())

        for index in table.indexes:
            if tuple(c.lower() for c in index.columns) == tuple(c.lower() for c in table.primary_key):
                continue
            key = (tuple(c.lower() for c in index.columns), index.unique)
            if key in seen:
                continue
            seen.add(key)
            name, create_sql, drop_sql = self.ddl_builder.index(table.target_name, index.columns, index.unique,
                                                                used=used_names)
            leading.add(index.columns[0].lower())
            indexes.append(ConvertedIndex(name=name, statement=create_sql, drop_statement=drop_sql))

        if self.index_fk_columns:
            for rel in relationships:
                if not self._emits(rel) or rel.column.lower() in leading:
                    continue
                column = table.get_column(rel.column)
                if column is not None and column.unique:
                    continue
                key = ((rel.column.lower(),), False)
                if key in seen:
                    continue
                seen.add(key)
                name, create_sql, drop_sql = self.ddl_builder.index(table.target_name, [rel.column], used=used_names)
                leading.add(rel.column.lower())
                indexes.append(ConvertedIndex(name=name, statement=create_sql, drop_statement=drop_sql,
                                              foreign_key_index=True))
        return indexes

    def _emits(self, rel: Relationship) -> bool:
        return rel.origin == "explicit" or self.emit_implied

    def _foreign_keys(self, table: Table, relationships: Tuple[Relationship, ...],
                      targets: Dict[str, str], source_file: str,
                      used_names: Set[str]) -> List[ConvertedForeignKey]:
        foreign_keys: List[ConvertedForeignKey] = []
        for rel in relationships:
            if rel.referenced_table not in targets:
                raise ConversionError(
                    f"Relationship references unknown table '{rel.referenced_table}'",
                    table=rel.table, column=rel.column,
                )
            if rel.origin == "implied":
                self._review(
                    source_file, f"{rel.table}.{rel.column} -> {rel.referenced_table}.{rel.referenced_column}",
                    'Implied_relationship',
                    f"Relationship inferred from column name"
                    f"{'' if self.emit_implied else ' (foreign key not emitted)'}.",
                )
            if not self._emits(rel):
                continue
            constraint, add_sql, drop_sql = self.ddl_builder.foreign_key(
                table.target_name, rel.column, targets[rel.referenced_table], rel.referenced_column,
                on_delete=rel.on_delete or self.default_on_delete,
                on_update=rel.on_update or self.default_on_update,
                used=used_names,
            )
            foreign_keys.append(ConvertedForeignKey(
                constraint_name=constraint,
                statement=add_sql,
                drop_statement=drop_sql,
                origin=rel.origin,
                self_referential=rel.is_self_referential,
            ))
        return foreign_keys

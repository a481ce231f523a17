"""
MigrationGenerator – one reversible Alembic revision per table, then one per
foreign-key batch.

Sequencing is carried entirely by the zero-padded filename prefix and the
``down_revision`` chain: every ``table`` unit sorts before every
``foreign_key`` unit, so a runner that executes files in lexical order never
adds a constraint before the table it references exists. Names and contents
are derived only from the model, so re-running against an unchanged schema
yields byte-identical files.
"""
import re
from typing import List, Literal, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

from schemaport.config import config
from schemaport.services.schema_analysis.models import SchemaModel
from schemaport.services.sql_conversion.converters.schema_converter import ConversionResult, SchemaConverter
from schemaport.utils.logger import setup_logger

_BIND_LIKE = re.compile(r"(?<![:\w\\]):(?=\w)")


class MigrationUnit(BaseModel):
    model_config = ConfigDict(frozen=True)

    filename: str
    revision: str
    down_revision: Optional[str] = None
    type: Literal["table", "foreign_key"]
    table: str
    up: Tuple[str, ...]
    down: Tuple[str, ...]
    content: str


def _py_literal(sql: str) -> str:
    """Render *sql* as a Python string literal for ``op.execute``."""
    sql = _BIND_LIKE.sub(r"\\:", sql)
    if '"""' in sql or sql.endswith('"'):
        return repr(sql)
    return '"""' + sql.replace("\\", "\\\\") + '"""'


def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_") or "table"


class MigrationGenerator:

    def __init__(self, converter: Optional[SchemaConverter] = None, revision_width: Optional[int] = None):
        self.logger = setup_logger('MigrationGenerator')
        self.converter = converter or SchemaConverter()
        self.revision_width = revision_width or config.get('migrations', {}).get('revision_width', 4)

    def generate_migrations(self, model: SchemaModel, conversion: Optional[ConversionResult] = None) -> List[MigrationUnit]:
        conversion = conversion or self.converter.convert_schema(model)
        units: List[MigrationUnit] = []
        previous: Optional[str] = None
        sequence = 0

        for table in conversion.tables:
            sequence += 1
            stem = f"{sequence:0{self.revision_width}d}_create_{_slug(table.target_name)}_table"
            up = table.create_statements + tuple(ix.statement for ix in table.indexes)
            down = (table.migration_drop_statement,)
            units.append(self._unit(stem, previous, "table", table.target_name, up, down,
                                    f"Create {table.target_name} table", table.source_name))
            previous = stem

        for table in conversion.tables:
            if not table.foreign_keys:
                continue
            sequence += 1
            stem = f"{sequence:0{self.revision_width}d}_add_foreign_keys_to_{_slug(table.target_name)}_table"
            up = tuple(fk.statement for fk in table.foreign_keys)
            down = tuple(fk.drop_statement for fk in reversed(table.foreign_keys))
            units.append(self._unit(stem, previous, "foreign_key", table.target_name, up, down,
                                    f"Add foreign keys to {table.target_name} table", table.source_name))
            previous = stem

        self.logger.info(
            f"Generated {len(units)} migration units "
            f"({sum(1 for u in units if u.type == 'table')} table, "
            f"{sum(1 for u in units if u.type == 'foreign_key')} foreign key)."
        )
        return units

    def _unit(self, stem: str, down_revision: Optional[str], unit_type: str, table: str,
              up: Sequence[str], down: Sequence[str], title: str, source_table: str) -> MigrationUnit:
        content = self._render(stem, down_revision, title, source_table, up, down)
        return MigrationUnit(
            filename=f"{stem}.py",
            revision=stem,
            down_revision=down_revision,
            type=unit_type,
            table=table,
            up=tuple(up),
            down=tuple(down),
            content=content,
        )

    @staticmethod
    def _render(revision: str, down_revision: Optional[str], title: str, source_table: str,
                up: Sequence[str], down: Sequence[str]) -> str:
        def body(statements: Sequence[str]) -> str:
            return "\n".join(f"    op.execute({_py_literal(stmt)})" for stmt in statements) or "    pass"

        return (
            f'"""{title}\n'
            f"\n"
            f"Revision ID: {revision}\n"
            f"Revises: {down_revision or ''}\n"
            f"Source table: {source_table}\n"
            f'"""\n'
            f"from alembic import op\n"
            f"\n"
            f"\n"
            f"# revision identifiers, used by Alembic.\n"
            f"revision = {revision!r}\n"
            f"down_revision = {down_revision!r}\n"
            f"branch_labels = None\n"
            f"depends_on = None\n"
            f"\n"
            f"\n"
            f"def upgrade():\n"
            f"{body(up)}\n"
            f"\n"
            f"\n"
            f"def downgrade():\n"
            f"{body(down)}\n"
        )

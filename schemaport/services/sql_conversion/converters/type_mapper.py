"""
Source-type -> target-type mapping driven by ``data_types.json``.

The mapping is a pure function of the source type string and a few column
flags. A type with no entry is a ConversionError naming the table, column and
the exact source type; it is never passed through or guessed.
"""
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from schemaport.errors import ConversionError
from schemaport.services.schema_analysis.models import Column, Table
from schemaport.services.schema_analysis.statement_splitter import parse_string_literal, split_top_level
from schemaport.utils.logger import setup_logger

from .base_converter import BaseConverter

_TYPE_RE = re.compile(r"^\s*([A-Za-z][A-Za-z0-9_ ]*?)\s*(?:\((.*)\))?\s*$", re.S)


@dataclass(frozen=True)
class TypeMapping:
    source_type: str
    target_type: str
    check_values: Optional[Tuple[str, ...]] = None
    notes: Tuple[str, ...] = ()

    @property
    def is_serial(self) -> bool:
        return self.target_type.upper().endswith("SERIAL")


class TypeMapper(BaseConverter):

    def __init__(self, source_dialect: Optional[str] = None, target_dialect: Optional[str] = None, rules: Optional[Dict[str, Any]] = None):
        super().__init__(source_dialect, target_dialect)
        self.logger = setup_logger('TypeMapper')
        raw_cfg = self.load_rules('data_types.json') if rules is None else rules
        if not raw_cfg:
            self.logger.warning("data_types.json is empty or missing; every column will fail to map.")

        self.type_map: Dict[str, str] = {self._norm(k): v for k, v in (raw_cfg.get('default') or {}).items()}
        self.exact_overrides: Dict[str, str] = {self._compact(k): v for k, v in (raw_cfg.get('exact_overrides') or {}).items()}
        self.paramless_targets = {t.upper() for t in raw_cfg.get('paramless_targets', [])}
        self.precision_targets = {t.upper() for t in raw_cfg.get('precision_targets', [])}
        self.serial_targets: Dict[str, str] = {k.upper(): v for k, v in (raw_cfg.get('serial_targets') or {}).items()}
        self.unsigned_promotions: Dict[str, str] = {k.upper(): v for k, v in (raw_cfg.get('unsigned_promotions') or {}).items()}
        self.dynamic_rules: Dict[str, Dict] = {k.upper(): v for k, v in (raw_cfg.get('dynamic_rules') or {}).items()}
        self.check_constraint_types = {t.upper() for t in raw_cfg.get('check_constraint_types', [])}

    @staticmethod
    def _norm(name: str) -> str:
        return " ".join(name.upper().split())

    @staticmethod
    def _compact(name: str) -> str:
        return re.sub(r"\s+", "", name.upper())

    def map_column(self, table: Table, column: Column) -> TypeMapping:
        return self.map_type(
            column.source_type,
            table=table.source_name,
            column=column.name,
            unsigned=column.unsigned,
            auto_increment=column.auto_increment,
        )

    def map_type(
        self,
        source_type: str,
        *,
        table: Optional[str] = None,
        column: Optional[str] = None,
        unsigned: bool = False,
        auto_increment: bool = False,
    ) -> TypeMapping:
        match = _TYPE_RE.match(source_type or "")
        if not match:
            raise ConversionError("Unparseable source type", table=table, column=column, source_type=source_type)
        base = self._norm(match.group(1))
        args = match.group(2)
        notes: List[str] = []
        check_values: Optional[Tuple[str, ...]] = None

        override = self.exact_overrides.get(self._compact(source_type))
        if override:
            target = override
            args = None
        elif base in self.type_map:
            target = self.type_map[base]
        else:
            raise ConversionError("No type mapping for source type", table=table, column=column, source_type=source_type)

        unpromoted = target
        if unsigned and target.upper() in self.unsigned_promotions:
            target = self.unsigned_promotions[target.upper()]
            notes.append(f"UNSIGNED {unpromoted} widened to {target}")

        rule = self.dynamic_rules.get(base)
        if rule and args and args.strip().isdigit() and int(args) > rule.get('max_size', 10485760):
            target = rule.get('overflow_type', target)
            notes.append(f"{base}({args}) exceeds {rule.get('max_size')} and becomes {target}")
            args = None

        if base in self.check_constraint_types:
            check_values = self._enum_values(args, table, column, source_type)
            longest = max((len(v) for v in check_values), default=1)
            args = str(max(longest, 1))

        target = self._attach_args(target, args)

        if auto_increment:
            serial = self.serial_targets.get(target.upper()) or self.serial_targets.get(unpromoted.upper())
            if not serial:
                raise ConversionError(
                    f"AUTO_INCREMENT is not supported on target type {target}",
                    table=table, column=column, source_type=source_type,
                )
            target = serial

        return TypeMapping(source_type=source_type, target_type=target, check_values=check_values, notes=tuple(notes))

    def _attach_args(self, target: str, args: Optional[str]) -> str:
        if "(" in target or not args:
            return target
        if target.upper() in self.paramless_targets or target.upper() not in self.precision_targets:
            return target
        return f"{target}({','.join(a.strip() for a in args.split(','))})"

    @staticmethod
    def _enum_values(args: Optional[str], table, column, source_type) -> Tuple[str, ...]:
        try:
            parts = split_top_level(args or "")
        except ValueError as exc:
            raise ConversionError(f"Malformed value list: {exc}", table=table, column=column, source_type=source_type) from exc
        values = tuple(parse_string_literal(p) for p in parts)
        if not values or any(v is None for v in values):
            raise ConversionError("Value list must contain quoted literals", table=table, column=column, source_type=source_type)
        return values

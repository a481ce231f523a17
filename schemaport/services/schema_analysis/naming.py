"""Table renaming rules: explicit legacy lookup first, generic pluralization second."""
from typing import Dict, Iterable, List, Optional, Set

from schemaport.errors import ConversionError
from schemaport.utils.config_loader import load_ddl_rules
from schemaport.utils.logger import setup_logger

_IRREGULAR = {"person": "people", "child": "children", "man": "men", "woman": "women"}
_UNCOUNTABLE = {"information", "equipment", "news", "series", "data", "metadata"}


def _split_last(name: str):
    head, sep, last = name.rpartition("_")
    return head + sep, last


def singularize(name: str, irregular: Optional[Dict[str, str]] = None, uncountable: Optional[Set[str]] = None) -> str:
    """Singularize the last ``_``-separated word of *name*."""
    irregular = _IRREGULAR if irregular is None else irregular
    uncountable = _UNCOUNTABLE if uncountable is None else uncountable
    prefix, word = _split_last(name.lower())
    if not word or word in uncountable:
        return prefix + word
    reverse = {plural: single for single, plural in irregular.items()}
    if word in reverse:
        return prefix + reverse[word]
    if word.endswith("ies") and len(word) > 3:
        return prefix + word[:-3] + "y"
    if word.endswith("sses"):
        return prefix + word[:-2]
    if word.endswith(("xes", "ches", "shes", "zes", "uses")):
        return prefix + word[:-2]
    if word.endswith("s") and not word.endswith(("ss", "us", "is")):
        return prefix + word[:-1]
    return prefix + word


def pluralize(name: str, irregular: Optional[Dict[str, str]] = None, uncountable: Optional[Set[str]] = None) -> str:
    """Pluralize the last ``_``-separated word of *name*; plural input is kept as is."""
    irregular = _IRREGULAR if irregular is None else irregular
    uncountable = _UNCOUNTABLE if uncountable is None else uncountable
    prefix, word = _split_last(name.lower())
    if not word or word in uncountable or word in irregular.values():
        return prefix + word
    if word in irregular:
        return prefix + irregular[word]
    if singularize(word, irregular, uncountable) != word:
        return prefix + word
    if word.endswith("y") and len(word) > 1 and word[-2] not in "aeiou":
        return prefix + word[:-1] + "ies"
    if word.endswith(("s", "x", "z", "ch", "sh")):
        return prefix + word + "es"
    return prefix + word + "s"


class TableRenamer:
    """
    Maps legacy table names to target names.

    The explicit ``lookup`` from ``table_names.json`` always wins; unknown names
    have a configured prefix stripped and their last word pluralized.
    """

    def __init__(self, rules: Optional[Dict] = None):
        self.logger = setup_logger('TableRenamer')
        rules = load_ddl_rules('table_names.json', self.logger) if rules is None else rules
        self.lookup: Dict[str, str] = {k.lower(): v for k, v in (rules.get('lookup') or {}).items()}
        self.strip_prefixes: List[str] = [p.lower() for p in rules.get('strip_prefixes', [])]
        self.irregular: Dict[str, str] = dict(_IRREGULAR, **(rules.get('irregular_plurals') or {}))
        self.uncountable: Set[str] = _UNCOUNTABLE | {w.lower() for w in rules.get('uncountable', [])}

    def strip_prefix(self, source_name: str) -> str:
        lowered = source_name.lower()
        for prefix in self.strip_prefixes:
            if lowered.startswith(prefix) and len(lowered) > len(prefix):
                return lowered[len(prefix):]
        return lowered

    def is_known(self, source_name: str) -> bool:
        return source_name.lower() in self.lookup

    def rename(self, source_name: str) -> str:
        known = self.lookup.get(source_name.lower())
        if known:
            return known
        return pluralize(self.strip_prefix(source_name), self.irregular, self.uncountable)

    def singular(self, name: str) -> str:
        return singularize(name, self.irregular, self.uncountable)

    def rename_all(self, source_names: Iterable[str]) -> Dict[str, str]:
        """Rename every table, failing when two tables land on one target name."""
        mapping: Dict[str, str] = {}
        owners: Dict[str, str] = {}
        for source_name in source_names:
            target = self.rename(source_name)
            if not target:
                raise ConversionError("Table rename produced an empty name", table=source_name)
            if target in owners:
                raise ConversionError(
                    f"Tables '{owners[target]}' and '{source_name}' both map to target name '{target}'",
                    table=source_name,
                )
            if not self.is_known(source_name):
                self.logger.info(f"Table '{source_name}' not in rename lookup; generic rule gives '{target}'.")
            owners[target] = source_name
            mapping[source_name] = target
        return mapping

    def name_stems(self, source_name: str, target_name: str) -> Set[str]:
        """Names a foreign-key column may use to point at this table."""
        stripped = self.strip_prefix(source_name)
        stems = {
            self.singular(stripped),
            self.singular(target_name.lower()),
            stripped,
            target_name.lower(),
        }
        return {s for s in stems if s}

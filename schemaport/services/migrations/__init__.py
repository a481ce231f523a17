from .generator import MigrationGenerator, MigrationUnit
from .writer import MigrationWriter

__all__ = ['MigrationGenerator', 'MigrationUnit', 'MigrationWriter']

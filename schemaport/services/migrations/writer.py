"""Writes migration units to disk as one all-or-nothing batch."""
import os
from pathlib import Path
from typing import Dict, List, Sequence

from schemaport.errors import EmissionError, MigrationCollisionError
from schemaport.utils.file_utils import ensure_directory_exists, write_file_atomic
from schemaport.utils.logger import setup_logger

from .generator import MigrationUnit


class MigrationWriter:

    def __init__(self, output_dir: str | Path):
        self.logger = setup_logger('MigrationWriter')
        self.output_dir = Path(output_dir)

    def find_collisions(self, units: Sequence[MigrationUnit]) -> List[str]:
        """Filenames from *units* that already exist in the output directory."""
        if not self.output_dir.is_dir():
            return []
        return [u.filename for u in units if (self.output_dir / u.filename).exists()]

    def save_migrations(self, units: Sequence[MigrationUnit], force: bool = False) -> List[str]:
        """Write every unit or none of them; returns the written paths in order.

        Without *force*, existing files abort the batch before anything is
        written and every colliding filename is reported.
        """
        collisions = self.find_collisions(units)
        if collisions and not force:
            self.logger.error(f"Refusing to overwrite {len(collisions)} existing migration file(s) in {self.output_dir}")
            raise MigrationCollisionError(collisions)
        if collisions:
            self.logger.warning(f"Overwriting {len(collisions)} existing migration file(s) in {self.output_dir}")

        try:
            ensure_directory_exists(self.output_dir)
        except OSError as exc:
            raise EmissionError(f"Cannot create migration directory: {exc}", path=str(self.output_dir)) from exc

        written: List[str] = []
        created: List[Path] = []
        # Previous content of overwritten files, restored if the batch fails
        replaced: Dict[Path, bytes] = {}
        for unit in units:
            path = self.output_dir / unit.filename
            try:
                if path.exists():
                    replaced[path] = path.read_bytes()
                write_file_atomic(path, unit.content)
            except OSError as exc:
                self._rollback(created, replaced)
                raise EmissionError(
                    f"Failed to write migration unit {unit.filename} ({exc}); "
                    f"{len(created)} new file(s) removed and {len(replaced)} overwritten file(s) restored",
                    path=str(path),
                ) from exc
            if path not in replaced:
                created.append(path)
            written.append(str(path))

        self.logger.info(f"Saved {len(written)} migration file(s) to {self.output_dir}")
        return written

    def _rollback(self, created: List[Path], replaced: Dict[Path, bytes]) -> None:
        for path in created:
            try:
                os.remove(path)
            except OSError as exc:
                self.logger.error(f"Could not remove partially written migration {path}: {exc}")
        for path, content in replaced.items():
            try:
                path.write_bytes(content)
            except OSError as exc:
                self.logger.error(f"Could not restore overwritten migration {path}: {exc}")

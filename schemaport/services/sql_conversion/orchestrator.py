"""MigrationOrchestrator – high-level driver that wires the pipeline to disk.

Responsibilities
----------------
1. Read the legacy DDL file through ``SchemaAnalyzer``.
2. Prepare output directories (``output/<command>/<stem>_<timestamp>`` unless
   the caller supplies one).
3. Delegate to ``SchemaConverter`` / ``MigrationGenerator``.
4. Write artifacts:
     • ``analysis_report.json``
     • ``<stem>_<target>.sql`` plus ``components/`` (create / fk / index / drop)
     • ``conversion_summary.json`` and the manual review log
     • migration revision scripts via ``MigrationWriter``

All detailed rewrite logic lives in the analysis and converter layers; the
orchestrator only handles I/O, logging and aggregation. Pipeline errors
(``ParseError``, ``ConversionError``, ``EmissionError``) propagate to the caller.
"""
import os
from pathlib import Path
from typing import Any, Dict, Optional

from schemaport.config import config
from schemaport.errors import EmissionError
from schemaport.services.migrations import MigrationGenerator, MigrationWriter
from schemaport.services.schema_analysis import SchemaAnalyzer, SchemaModel
from schemaport.utils.file_utils import write_file_content, write_json_file
from schemaport.utils.logger import setup_logger

from .converters.schema_converter import ConversionResult, SchemaConverter, render_statements
from .utils.directory_utils import create_run_directory, get_timestamp, output_path
from .utils.manual_review_logger import ManualReviewLogger
from .utils.result_formatter import create_result_dictionary

COMPONENT_FILES = {
    "create": "create_tables.sql",
    "foreign_key": "foreign_keys.sql",
    "index": "indexes.sql",
    "drop": "drop_tables.sql",
}


class MigrationOrchestrator:

    def __init__(self, source_dialect: Optional[str] = None, target_dialect: Optional[str] = None,
                 *, analyzer: Optional[SchemaAnalyzer] = None):
        self.logger = setup_logger("MigrationOrchestrator")
        conversion_cfg = config.get('conversion', {})
        self.source_dialect = source_dialect or conversion_cfg.get('source_dialect', 'mysql')
        self.target_dialect = target_dialect or conversion_cfg.get('target_dialect', 'postgres')
        self.analyzer = analyzer or SchemaAnalyzer()

    # ------------------------------------------------------------------
    # Public commands
    # ------------------------------------------------------------------

    def analyze(self, input_path: str, output_dir: Optional[str] = None) -> Dict[str, Any]:
        model = self._load(input_path)
        report = self.analyzer.build_report(model)

        run_dir = self._setup_output_dir("analysis", input_path, output_dir)
        report_path = self._write_json(run_dir / "analysis_report.json", report)
        self.logger.info(f"Analysis report written to: {report_path}")

        return create_result_dictionary(
            "success",
            f"Analyzed {model.summary.total_tables} tables from {os.path.basename(input_path)}.",
            stats=model.summary.model_dump(),
            output_dir=str(run_dir),
            source_file=input_path,
            report_file=report_path,
            diagnostics=[d.model_dump() for d in model.diagnostics],
        )

    def convert(self, input_path: str, output_dir: Optional[str] = None) -> Dict[str, Any]:
        model = self._load(input_path)
        run_dir = self._setup_output_dir("converted", input_path, output_dir)

        review_logger = ManualReviewLogger(output_dir=str(run_dir), logger=self.logger)
        converter = SchemaConverter(self.source_dialect, self.target_dialect, manual_review_logger=review_logger)
        result = converter.convert_schema(model)

        files = self._write_conversion_artifacts(result, run_dir, Path(input_path).stem)
        summary_payload = {
            "source_file": str(input_path),
            "source_dialect": self.source_dialect,
            "target_dialect": self.target_dialect,
            "conversion_timestamp": get_timestamp(),
            "schema_summary": model.summary.model_dump(),
            "conversion": result.summary(),
            "skipped_implied_edges": [list(edge) for edge in result.skipped_implied_edges],
            "files": files,
            "manual_review_items": len(review_logger.review_items),
        }
        summary_file = self._write_json(run_dir / "conversion_summary.json", summary_payload)

        review_file = review_logger.write_manual_review_log()
        if review_file:
            self.logger.info(review_logger.create_summary_report())

        return create_result_dictionary(
            "success",
            f"Converted {len(result.tables)} tables: {self.source_dialect} -> {self.target_dialect}.",
            stats=result.summary(),
            output_dir=str(run_dir),
            source_file=input_path,
            files=files,
            summary_file=summary_file,
            manual_review_file=review_file,
        )

    def generate_migrations(self, input_path: str, output_dir: Optional[str] = None,
                            force: bool = False) -> Dict[str, Any]:
        model = self._load(input_path)
        generator = MigrationGenerator(SchemaConverter(self.source_dialect, self.target_dialect))
        units = generator.generate_migrations(model)

        # A fixed directory so that re-runs are detected as collisions.
        target_dir = Path(output_dir) if output_dir else output_path(
            config.get('migrations', {}).get('directory', 'migrations')
        )
        written = MigrationWriter(target_dir).save_migrations(units, force=force)

        return create_result_dictionary(
            "success",
            f"Generated {len(units)} migration units in {target_dir}.",
            stats={
                "table_units": sum(1 for u in units if u.type == "table"),
                "foreign_key_units": sum(1 for u in units if u.type == "foreign_key"),
            },
            output_dir=str(target_dir),
            source_file=input_path,
            files=written,
            units=[{"filename": u.filename, "type": u.type, "table": u.table} for u in units],
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, input_path: str) -> SchemaModel:
        self.logger.info(f"Reading legacy schema: {input_path}")
        return self.analyzer.parse_schema_from_file(input_path)

    def _setup_output_dir(self, command: str, input_path: str, output_dir: Optional[str]) -> Path:
        try:
            if output_dir:
                final_output_dir = Path(output_dir)
                final_output_dir.mkdir(parents=True, exist_ok=True)
                return final_output_dir
            return create_run_directory(command, Path(input_path).stem)
        except OSError as e:
            self.logger.error(f"Failed to create output directory for {command}: {e}", exc_info=True)
            raise EmissionError(f"Cannot create output directory: {e}", path=output_dir) from e

    def _write_conversion_artifacts(self, result: ConversionResult, run_dir: Path, stem: str) -> Dict[str, str]:
        files: Dict[str, str] = {}
        complete_path = run_dir / f"{stem}_{self.target_dialect}.sql"
        self._write_sql(complete_path, result.complete_sql)
        files["complete"] = str(complete_path)

        components_dir = run_dir / "components"
        for group, statements in result.statement_groups():
            path = components_dir / COMPONENT_FILES[group]
            self._write_sql(path, render_statements(statements))
            files[group] = str(path)

        self.logger.info(f"Wrote {len(files)} SQL files to: {run_dir}")
        return files

    def _write_sql(self, path: Path, sql: str) -> None:
        # Normalise line-endings and guarantee single trailing newline
        sql = sql.replace('\r\n', '\n').replace('\r', '\n').rstrip('\n') + '\n'
        try:
            write_file_content(path, sql)
        except OSError as e:
            raise EmissionError(f"Failed to write SQL file: {e}", path=str(path)) from e

    def _write_json(self, path: Path, data: Any) -> str:
        try:
            return write_json_file(path, data)
        except OSError as e:
            raise EmissionError(f"Failed to write report: {e}", path=str(path)) from e

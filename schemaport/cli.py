"""
schemaport command line.

    schemaport analyze legacy.sql [--output-dir DIR]
    schemaport convert legacy.sql [--output-dir DIR]
    schemaport generate-migrations legacy.sql [--output-dir DIR] [--force]
    schemaport health-check [--connection NAME]
    schemaport diagnostics [--connection NAME]
    schemaport check-rls [--connection NAME] [--schema SCHEMA]
    schemaport apply legacy.sql [--connection NAME] [--include-drops]
    schemaport serve [--host HOST] [--port PORT]

Exit status: 0 success, 1 failure, 2 usage error, 3 completed with items
that need attention (ambiguous relationships, degraded connection, tables
without row-level security).
"""
import argparse
import json
import sys
from typing import Any, Dict, List, Optional

from schemaport import __version__
from schemaport.config import config
from schemaport.errors import SchemaPortError
from schemaport.utils.error_utils import sanitize_error_message
from schemaport.utils.logger import setup_logger

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_PARTIAL = 3

logger = setup_logger('schemaport_cli')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="schemaport",
        description="Analyze legacy MySQL DDL, convert it to PostgreSQL and emit reversible migrations.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--json", action="store_true", help="Print the full result as JSON")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    analyze = sub.add_parser("analyze", help="Parse the schema and write analysis_report.json")
    analyze.add_argument("input", help="Legacy DDL file")
    analyze.add_argument("--output-dir", default=None, help="Directory for the report (default: output/analysis/<stem>_<ts>)")

    convert = sub.add_parser("convert", help="Write target-dialect SQL and component files")
    convert.add_argument("input", help="Legacy DDL file")
    convert.add_argument("--output-dir", default=None, help="Directory for SQL artifacts (default: output/converted/<stem>_<ts>)")
    convert.add_argument("--source-dialect", default=None)
    convert.add_argument("--target-dialect", default=None)

    migrations = sub.add_parser("generate-migrations", help="Write one revision per table plus foreign-key revisions")
    migrations.add_argument("input", help="Legacy DDL file")
    migrations.add_argument("--output-dir", default=None, help="Migration directory (default: output/migrations)")
    migrations.add_argument("--force", action="store_true", help="Overwrite existing migration files")

    for name, help_text in (("health-check", "Probe connectivity, prepared statements and staleness"),
                            ("test-connection", "Alias of health-check"),
                            ("diagnostics", "Show masked configuration and recommendations")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--connection", default=None, help="Connection profile (default: connections.default)")

    rls = sub.add_parser("check-rls", help="List row-level security status of every table in a schema")
    rls.add_argument("--connection", default=None, help="Connection profile (default: connections.default)")
    rls.add_argument("--schema", default="public")

    apply = sub.add_parser("apply", help="Convert and execute the DDL against a live database")
    apply.add_argument("input", help="Legacy DDL file")
    apply.add_argument("--connection", default=None, help="Connection profile (default: connections.default)")
    apply.add_argument("--include-drops", action="store_true", help="Drop existing tables first")
    apply.add_argument("--allow-transaction-pooler", action="store_true",
                       help="Run DDL even through a transaction-mode pooler")

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.add_argument("--reload", action="store_true")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return EXIT_USAGE if exc.code else EXIT_OK

    handler = COMMANDS[args.command]
    try:
        return handler(args)
    except SchemaPortError as e:
        message = sanitize_error_message(str(e))
        logger.error(f"{args.command} failed: {message}")
        _emit(args, {"status": "error", **e.to_dict(), "message": message}, f"ERROR: {message}", stream=sys.stderr)
        return EXIT_FAILURE
    except ValueError as e:
        _emit(args, {"status": "error", "message": str(e)}, f"ERROR: {e}", stream=sys.stderr)
        return EXIT_FAILURE


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _orchestrator(args):
    from schemaport.services.sql_conversion.orchestrator import MigrationOrchestrator

    return MigrationOrchestrator(getattr(args, "source_dialect", None), getattr(args, "target_dialect", None))


def cmd_analyze(args) -> int:
    result = _orchestrator(args).analyze(args.input, args.output_dir)
    stats = result["stats"]
    lines = [
        result["message"],
        f"  tables: {stats['total_tables']}  columns: {stats['total_columns']}  indexes: {stats['total_indexes']}",
        f"  relationships: {stats['total_relationships']} "
        f"({stats['explicit_relationships']} explicit, {stats['implied_relationships']} implied)",
        f"  timestamps: {stats['tables_with_timestamps']} full, {stats['tables_with_partial_timestamps']} partial",
        f"  auto-increment: {stats['tables_with_auto_increment']}",
        f"  report: {result['report_file']}",
    ]
    lines.extend(f"  ! {d['message']}" for d in result["diagnostics"])
    _emit(args, result, "\n".join(lines))
    return EXIT_PARTIAL if result["diagnostics"] else EXIT_OK


def cmd_convert(args) -> int:
    result = _orchestrator(args).convert(args.input, args.output_dir)
    stats = result["stats"]
    lines = [
        result["message"],
        f"  create order: {', '.join(stats['table_order'])}",
        f"  statements: {stats['create_statements']} create, {stats['indexes']} index, "
        f"{stats['foreign_keys']} foreign key, {stats['drop_statements']} drop",
        f"  sql: {result['files']['complete']}",
        f"  summary: {result['summary_file']}",
    ]
    if result.get("manual_review_file"):
        lines.append(f"  manual review: {result['manual_review_file']}")
    _emit(args, result, "\n".join(lines))
    return EXIT_OK


def cmd_generate_migrations(args) -> int:
    result = _orchestrator(args).generate_migrations(args.input, args.output_dir, force=args.force)
    lines = [result["message"]] + [f"  {u['filename']}" for u in result["units"]]
    _emit(args, result, "\n".join(lines))
    return EXIT_OK


def cmd_health_check(args) -> int:
    from schemaport.services.db import ConnectionManager, ConnectionProfile

    profile = ConnectionProfile.from_config(args.connection)
    manager = ConnectionManager()
    try:
        health = manager.perform_health_check(profile)
        result = {"status": "success" if health.is_healthy else "error", "health": health.model_dump(),
                  "recommendations": manager.get_recommendations(profile, health)}
    finally:
        manager.close_all()

    lines = [
        f"Connection '{profile.name}' ({profile.effective_pool_mode} mode): "
        f"{'healthy' if health.is_healthy else 'UNHEALTHY'}",
        f"  connected: {health.is_connected}",
        f"  prepared statements: {health.prepared_statements_valid}",
        f"  stale: {health.is_stale}",
    ]
    lines.extend(f"  error: {e}" for e in health.recent_errors)
    lines.extend(f"  hint: {r}" for r in result["recommendations"])
    _emit(args, result, "\n".join(lines))
    if health.is_healthy:
        return EXIT_OK
    return EXIT_PARTIAL if health.is_connected else EXIT_FAILURE


def cmd_diagnostics(args) -> int:
    from schemaport.services.db import ConnectionManager, ConnectionProfile

    profile = ConnectionProfile.from_config(args.connection)
    manager = ConnectionManager()
    try:
        manager.perform_health_check(profile)
        result = manager.get_diagnostics(profile)
    finally:
        manager.close_all()
    _emit(args, result, json.dumps(result, indent=2, default=str))
    return EXIT_OK if result["health"]["is_healthy"] else EXIT_PARTIAL


def cmd_check_rls(args) -> int:
    from schemaport.services.db import ConnectionManager, ConnectionProfile, QueryExecutor, check_rls

    profile = ConnectionProfile.from_config(args.connection)
    manager = ConnectionManager()
    try:
        result = check_rls(QueryExecutor(manager), profile, schema=args.schema)
    finally:
        manager.close_all()

    lines = [result["message"]]
    for table in result["tables"]:
        flag = "enabled " if table["rls_enabled"] else "DISABLED"
        lines.append(f"  {flag}  {table['table']} ({table['policies']} policies)")
    lines.extend(f"  ! {name}: RLS enabled without any policy" for name in result["without_policies"])
    _emit(args, result, "\n".join(lines))
    return EXIT_PARTIAL if result["unrestricted"] else EXIT_OK


def cmd_apply(args) -> int:
    from schemaport.services.db import ConnectionManager, ConnectionProfile, MigrationRunner
    from schemaport.services.sql_conversion import SchemaConverter

    orchestrator = _orchestrator(args)
    model = orchestrator.analyzer.parse_schema_from_file(args.input)
    conversion = SchemaConverter(orchestrator.source_dialect, orchestrator.target_dialect).convert_schema(model)

    profile = ConnectionProfile.from_config(args.connection)
    manager = ConnectionManager()
    try:
        runner = MigrationRunner(manager, allow_transaction_pooler=args.allow_transaction_pooler or None)
        result = runner.apply(profile, conversion, include_drops=args.include_drops)
    finally:
        manager.close_all()
    _emit(args, result, f"{result['message']} ({result['statements_executed']} statements, "
                        f"{result['attempts']} attempt(s))")
    return EXIT_OK


def cmd_serve(args) -> int:
    import uvicorn

    api_cfg = config.get('api', {})
    uvicorn.run(
        "schemaport.api:app",
        host=args.host or api_cfg.get('host', "127.0.0.1"),
        port=args.port or api_cfg.get('port', 5001),
        reload=args.reload or api_cfg.get('debug', False),
    )
    return EXIT_OK


COMMANDS = {
    "analyze": cmd_analyze,
    "convert": cmd_convert,
    "generate-migrations": cmd_generate_migrations,
    "health-check": cmd_health_check,
    "test-connection": cmd_health_check,
    "diagnostics": cmd_diagnostics,
    "check-rls": cmd_check_rls,
    "apply": cmd_apply,
    "serve": cmd_serve,
}


def _emit(args, result: Dict[str, Any], text: str, stream=None) -> None:
    stream = stream or sys.stdout
    if getattr(args, "json", False):
        print(json.dumps(result, indent=2, default=str), file=stream)
    else:
        print(text, file=stream)


if __name__ == "__main__":
    sys.exit(main())

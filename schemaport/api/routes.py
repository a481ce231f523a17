from fastapi import APIRouter, Body
from fastapi.responses import JSONResponse
from typing import Dict, Any, Optional
import os

from schemaport.errors import (
    ConversionError,
    DatabaseConnectionError,
    EmissionError,
    MigrationCollisionError,
    ParseError,
    PolicyError,
    SchemaPortError,
)
from schemaport.services.db import ConnectionManager, ConnectionProfile, QueryExecutor, check_rls, list_profiles
from schemaport.services.sql_conversion.orchestrator import MigrationOrchestrator
from schemaport.utils.error_utils import sanitize_error_message
from schemaport.utils.logger import setup_logger
from schemaport.utils.timing import timed

api_router = APIRouter(prefix='/api/v1')

# Stateful services only (connection cache, health history and query metrics)
connection_manager = ConnectionManager()
query_executor = QueryExecutor(connection_manager)

# Setup logger for API
logger = setup_logger('api_routes')


def _status_for(error: SchemaPortError) -> int:
    if isinstance(error, MigrationCollisionError):
        return 409
    if isinstance(error, (ParseError, ConversionError)):
        return 422
    if isinstance(error, PolicyError):
        return 403
    if isinstance(error, DatabaseConnectionError):
        return 503 if error.transient else 502
    if isinstance(error, EmissionError):
        return 500
    return 500


def _error_response(error: SchemaPortError) -> JSONResponse:
    payload = error.to_dict()
    payload['message'] = sanitize_error_message(payload.get('message', ''))
    return JSONResponse({'status': 'error', **payload}, status_code=_status_for(error))


def _require_input(data: Dict[str, Any]) -> Optional[JSONResponse]:
    input_path = data.get('input_path')
    if not input_path:
        return JSONResponse({'error': 'input_path is required'}, status_code=400)
    if not os.path.isfile(input_path):
        return JSONResponse({'error': f'Input file does not exist: {input_path}'}, status_code=404)
    return None


def _profile(name: Optional[str]) -> ConnectionProfile:
    return ConnectionProfile.from_config(name)


@api_router.post('/schema/analyze')
def analyze_schema(data: Dict[str, Any] = Body(...)):
    """Parse a legacy DDL file and write analysis_report.json."""
    invalid = _require_input(data)
    if invalid:
        return invalid
    try:
        orchestrator = MigrationOrchestrator()
        return JSONResponse(timed(orchestrator.analyze, data['input_path'], data.get('output_dir')))
    except SchemaPortError as e:
        logger.error(f"/schema/analyze failed: {e}")
        return _error_response(e)


@api_router.post('/schema/convert')
def convert_schema(data: Dict[str, Any] = Body(...)):
    """Convert a legacy DDL file into target-dialect SQL artifacts."""
    invalid = _require_input(data)
    if invalid:
        return invalid
    try:
        orchestrator = MigrationOrchestrator(
            source_dialect=data.get('source_dialect'),
            target_dialect=data.get('target_dialect'),
        )
        return JSONResponse(timed(orchestrator.convert, data['input_path'], data.get('output_dir')))
    except SchemaPortError as e:
        logger.error(f"/schema/convert failed: {e}")
        return _error_response(e)


@api_router.post('/migrations/generate')
def generate_migrations(data: Dict[str, Any] = Body(...)):
    """Write one migration revision per table plus foreign-key revisions."""
    invalid = _require_input(data)
    if invalid:
        return invalid
    try:
        orchestrator = MigrationOrchestrator()
        result = timed(
            orchestrator.generate_migrations,
            data['input_path'],
            data.get('output_dir'),
            force=bool(data.get('force', False)),
        )
        return JSONResponse(result)
    except SchemaPortError as e:
        logger.error(f"/migrations/generate failed: {e}")
        return _error_response(e)


@api_router.post('/db/health-check')
def health_check(data: Dict[str, Any] = Body(default={})):
    """Run connectivity, prepared-statement and staleness probes."""
    try:
        profile = _profile((data or {}).get('connection'))
    except ValueError as ve:
        return JSONResponse({'error': str(ve)}, status_code=404)

    health = connection_manager.perform_health_check(profile)
    return JSONResponse({
        'status': 'success' if health.is_healthy else 'error',
        'message': f"Connection '{profile.name}' is {'healthy' if health.is_healthy else 'unhealthy'}",
        'health': health.model_dump(),
    }, status_code=200 if health.is_healthy else 503)


@api_router.get('/db/profiles')
def profiles():
    """Configured connection profiles with secrets masked."""
    return JSONResponse(list_profiles())


@api_router.get('/db/diagnostics/{name}')
def diagnostics(name: str):
    """Masked configuration, health snapshot and recommendations."""
    try:
        profile = _profile(name)
    except ValueError as ve:
        return JSONResponse({'error': str(ve)}, status_code=404)
    return JSONResponse({
        **connection_manager.get_diagnostics(profile),
        'performance': query_executor.get_performance_statistics(),
    })


@api_router.get('/db/performance')
def performance():
    """Execution time, retry rate and slow/normal split of recent queries."""
    return JSONResponse(query_executor.get_performance_statistics())


@api_router.delete('/db/performance')
def clear_performance():
    query_executor.clear_performance_metrics()
    return JSONResponse({'status': 'success', 'message': 'Performance metrics cleared'})


@api_router.get('/db/rls/{name}')
def rls_status(name: str, schema: str = 'public'):
    """Row-level security flag and policy count of every table in *schema*."""
    try:
        profile = _profile(name)
    except ValueError as ve:
        return JSONResponse({'error': str(ve)}, status_code=404)
    try:
        return JSONResponse(check_rls(query_executor, profile, schema=schema))
    except SchemaPortError as e:
        logger.error(f"/db/rls/{name} failed: {e}")
        return _error_response(e)

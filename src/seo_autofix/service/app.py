"""FastAPI admin-ajax endpoint for the scan service.

Every operation goes through one URL. The `action` field selects the module
and operation (`seoautofix_<module>_<operation>`), the `nonce` field must match
the configured token, and responses use the `{success, data}` envelope.
"""

import logging
import secrets
from typing import Callable, Optional

from fastapi import BackgroundTasks, FastAPI, Request, status
from fastapi.responses import JSONResponse, Response

from ..config import Settings, get_settings
from ..models import ScanModule
from ..storage import SQLiteStore
from .findings_source import FindingsFileSource, FindingsSource, StaticFindingsSource
from .scan_service import ScanService, ScanServiceError

logger = logging.getLogger(__name__)

AJAX_PATH = "/wp-admin/admin-ajax.php"


def send_json_success(
    data=None, status_code: int = status.HTTP_200_OK, background: Optional[BackgroundTasks] = None
) -> JSONResponse:
    return JSONResponse({"success": True, "data": data}, status_code=status_code, background=background)


def send_json_error(
    message: str, status_code: int = status.HTTP_200_OK, background: Optional[BackgroundTasks] = None
) -> JSONResponse:
    return JSONResponse(
        {"success": False, "data": {"message": message}}, status_code=status_code, background=background
    )


def _int_field(fields, name: str, default: Optional[int] = None) -> Optional[int]:
    value = fields.get(name)
    if value in (None, ""):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ScanServiceError("Invalid parameters")


def _id_list(fields) -> list[int]:
    raw = fields.getlist("ids[]") or fields.getlist("ids")
    try:
        return [int(value) for value in raw if value != ""]
    except ValueError:
        raise ScanServiceError("Invalid parameters")


# =============================================================================
# Operations
# =============================================================================


def _start_scan(service: ScanService, fields, background: BackgroundTasks):
    return service.start_scan(background=background)


def _process_batch(service: ScanService, fields, background: BackgroundTasks):
    return service.process_batch(
        fields.get("scan_id", ""), _int_field(fields, "batch_size"), background=background
    )


def _get_progress(service: ScanService, fields, background: BackgroundTasks):
    return service.get_progress(fields.get("scan_id", ""))


def _get_results(service: ScanService, fields, background: BackgroundTasks):
    return service.get_results(
        fields.get("scan_id", ""),
        filter=fields.get("filter") or "all",
        search=fields.get("search", ""),
        page=_int_field(fields, "page", 1),
        per_page=_int_field(fields, "per_page", 25),
        error_type=fields.get("error_type") or "all",
        location=fields.get("location") or "all",
    )


def _update_suggestion(service: ScanService, fields, background: BackgroundTasks):
    return service.update_suggestion(_int_field(fields, "id"), fields.get("new_url"))


def _delete_entry(service: ScanService, fields, background: BackgroundTasks):
    return service.delete_entry(_int_field(fields, "id"))


def _bulk_delete(service: ScanService, fields, background: BackgroundTasks):
    return service.bulk_delete(_id_list(fields))


def _get_occurrences(service: ScanService, fields, background: BackgroundTasks):
    return service.get_occurrences(fields.get("scan_id", ""), fields.get("original_url"))


def _apply_fixes(service: ScanService, fields, background: BackgroundTasks):
    return service.apply_fixes(_id_list(fields))


def _revert_fixes(service: ScanService, fields, background: BackgroundTasks):
    return service.revert_fixes(fields.get("fix_session_id", ""))


def _get_fix_sessions(service: ScanService, fields, background: BackgroundTasks):
    return service.get_fix_sessions(fields.get("scan_id", ""))


def _export_csv(service: ScanService, fields, background: BackgroundTasks):
    return service.export_csv(fields.get("scan_id", ""), fields.get("filter") or "all")


OPERATIONS: dict[str, Callable] = {
    "start_scan": _start_scan,
    "process_batch": _process_batch,
    "get_progress": _get_progress,
    "get_results": _get_results,
    "update_suggestion": _update_suggestion,
    "delete_entry": _delete_entry,
    "bulk_delete": _bulk_delete,
    "get_occurrences": _get_occurrences,
    "apply_fixes": _apply_fixes,
    "revert_fixes": _revert_fixes,
    "get_fix_sessions": _get_fix_sessions,
    "export_csv": _export_csv,
}


def resolve_action(action: str, services: dict[str, ScanService]):
    """Split an action name into its service and operation handler.

    Returns (None, None, None) for actions no service handles.
    """
    for module, service in services.items():
        prefix = ScanModule(module).action_prefix + "_"
        if action.startswith(prefix):
            operation = action[len(prefix):]
            if operation in OPERATIONS:
                return service, operation, OPERATIONS[operation]
    return None, None, None


# =============================================================================
# Application
# =============================================================================


def create_app(services: dict[str, ScanService], nonce: str) -> FastAPI:
    """Create the admin-ajax application.

    Args:
        services: Scan services keyed by module name
        nonce: Token every request must carry
    """
    app = FastAPI(
        title="SEO AutoFix Scan Service",
        description="Batch scan service for the SEO AutoFix admin screens",
        version="0.1.0",
    )

    if not nonce:
        logger.warning("No nonce configured; requests must send an empty nonce")

    @app.api_route(AJAX_PATH, methods=["GET", "POST"])
    async def admin_ajax(request: Request):
        if request.method == "POST":
            fields = await request.form()
            action = fields.get("action") or request.query_params.get("action", "")
        else:
            fields = request.query_params
            action = fields.get("action", "")

        service, operation, handler = resolve_action(action, services)
        if handler is None:
            logger.warning(f"Unknown action: {action!r}")
            return send_json_error("Invalid action", status.HTTP_400_BAD_REQUEST)

        sent_nonce = fields.get("nonce") or request.query_params.get("nonce", "")
        if not secrets.compare_digest(str(sent_nonce).encode("utf8"), nonce.encode("utf8")):
            logger.warning(f"Nonce check failed for {action}")
            return send_json_error("Security check failed", status.HTTP_403_FORBIDDEN)

        logger.debug(f"{request.method} {action}")
        # Notifications queued here are sent once the response is out
        tasks = BackgroundTasks()
        try:
            data = handler(service, fields, tasks)
        except ScanServiceError as e:
            logger.info(f"{action} refused: {e}")
            return send_json_error(str(e), background=tasks)
        except Exception as e:
            logger.exception(f"{action} failed")
            return send_json_error(str(e) or "An unexpected error occurred", background=tasks)

        if operation == "export_csv":
            return Response(
                content=data,
                media_type="text/csv",
                headers={"Content-Disposition": f'attachment; filename="{service.module.value}-results.csv"'},
            )
        return send_json_success(data, background=tasks)

    @app.get("/health")
    async def health():
        return {"status": "ok", "modules": sorted(services)}

    return app


def _findings_source(path: Optional[str], module: ScanModule) -> FindingsSource:
    if not path:
        logger.warning(f"No findings file configured for {module.value}; scans will be empty")
        return StaticFindingsSource([])
    return FindingsFileSource(path)


def build_services(settings: Optional[Settings] = None) -> dict[str, ScanService]:
    """Create one scan service per module over a shared store."""
    settings = settings or get_settings()
    store = SQLiteStore(settings.database_path)
    paths = {
        ScanModule.BROKEN_LINKS: settings.findings_path,
        ScanModule.IMAGE_SEO: settings.image_findings_path,
    }
    return {
        module.value: ScanService(
            module,
            store,
            _findings_source(path, module),
            batch_size=settings.batch_size,
        )
        for module, path in paths.items()
    }


def run_server(host: Optional[str] = None, port: Optional[int] = None):
    """Run the scan service."""
    import uvicorn

    settings = get_settings()
    app = create_app(build_services(settings), settings.nonce)
    uvicorn.run(app, host=host or settings.api_host, port=port or settings.api_port)

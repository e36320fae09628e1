"""Reference scan service behind the admin-ajax endpoint."""

from .app import build_services, create_app, run_server
from .findings_source import FindingsFileSource, FindingsSource, StaticFindingsSource
from .scan_service import ScanService, ScanServiceError

__all__ = [
    "build_services",
    "create_app",
    "run_server",
    "FindingsFileSource",
    "FindingsSource",
    "StaticFindingsSource",
    "ScanService",
    "ScanServiceError",
]

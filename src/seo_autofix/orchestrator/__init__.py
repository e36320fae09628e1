"""Scan orchestration for the admin screens."""

from .scan_orchestrator import ScanOrchestrator
from .view_state import ClientViewState

__all__ = ["ScanOrchestrator", "ClientViewState"]

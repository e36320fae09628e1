"""Result views for the admin screens."""

from .base import ResultsView
from .console_view import ConsoleView

__all__ = ["ResultsView", "ConsoleView"]

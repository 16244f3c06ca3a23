"""Background workers for the vendor portal."""

from .departure_completion_worker import DepartureCompletionWorker

__all__ = ["DepartureCompletionWorker"]

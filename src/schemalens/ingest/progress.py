"""Progress events and cooperative cancellation for index runs."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from schemalens.errors import IndexCancelled


class CrawlPhase(StrEnum):
    """Phases of one index run, in the order they occur."""

    CONNECTING = "connecting"
    CRAWLING_TABLES = "crawling_tables"
    CRAWLING_VIEWS = "crawling_views"
    CRAWLING_PROCEDURES = "crawling_procedures"
    CRAWLING_FUNCTIONS = "crawling_functions"
    SUMMARIZING = "summarizing"
    EMBEDDING = "embedding"
    STORING = "storing"


@dataclass(frozen=True)
class ProgressEvent:
    source_id: str
    phase: CrawlPhase
    current: int
    total: int
    current_object: str | None = None


ProgressCallback = Callable[[ProgressEvent], None]


def ignore_progress(event: ProgressEvent) -> None:
    """Default progress sink."""


class CancelToken:
    """Shared cancel signal for one in-flight index run.

    Passed explicitly into every step that may block on an external service;
    each step calls ``raise_if_cancelled()`` before doing more work.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise IndexCancelled if cancellation has been requested."""
        if self._event.is_set():
            raise IndexCancelled("Index run cancelled.")

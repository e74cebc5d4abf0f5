"""Progress events, their fan-out channel, and the cooperative stop token."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from leadfinder.models import LeadRecord

logger = logging.getLogger(__name__)

STATUS = "status"
RESULT = "result"
ERROR = "error"
STOPPED = "stopped"
EVENT_TYPES = frozenset({STATUS, RESULT, ERROR, STOPPED})

END_OF_STREAM = "data: [DONE]\n\n"


@dataclass(frozen=True)
class ProgressEvent:
    type: str
    message: Optional[str] = None
    data: Optional[LeadRecord] = None

    def __post_init__(self) -> None:
        if self.type not in EVENT_TYPES:
            raise ValueError(f"Unknown progress event type: {self.type}")

    @classmethod
    def status(cls, message: str) -> "ProgressEvent":
        return cls(STATUS, message=message)

    @classmethod
    def result(cls, record: LeadRecord) -> "ProgressEvent":
        return cls(RESULT, data=record)

    @classmethod
    def error(cls, message: str) -> "ProgressEvent":
        return cls(ERROR, message=message)

    @classmethod
    def stopped(cls, message: Optional[str] = None) -> "ProgressEvent":
        return cls(STOPPED, message=message)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.type}
        if self.message is not None:
            payload["message"] = self.message
        if self.data is not None:
            payload["data"] = self.data.to_dict()
        return payload

    def to_sse(self) -> str:
        return f"data: {json.dumps(self.to_dict(), ensure_ascii=False)}\n\n"


Observer = Callable[[ProgressEvent], None]


class ProgressChannel:
    """One-way event stream from the pipeline to any number of observers.

    Only the pipeline thread emits, so no locking is needed around the
    observer list once the run has started.
    """

    def __init__(self) -> None:
        self._observers: List[Observer] = []

    def subscribe(self, observer: Observer) -> None:
        self._observers.append(observer)

    def emit(self, event: ProgressEvent) -> None:
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception:  # noqa: BLE001
                logger.exception("Progress observer %r failed on %s event", observer, event.type)


class CancellationToken:
    """Advisory stop flag; the pipeline only checks it before starting a place."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class LoggingObserver:
    """Mirror progress events into the application log."""

    def __init__(self, search_id: str, log: Optional[logging.Logger] = None) -> None:
        self.search_id = search_id
        self.log = log or logger

    def __call__(self, event: ProgressEvent) -> None:
        if event.type == RESULT and event.data is not None:
            record = event.data
            self.log.info(
                "[%s] result company=%s lead=%s email=%s phone=%s phase=%s",
                self.search_id,
                record.company_name,
                record.lead_name,
                record.email,
                record.phone,
                record.search_phase,
            )
        elif event.type == ERROR:
            self.log.error("[%s] %s", self.search_id, event.message)
        else:
            self.log.info("[%s] %s: %s", self.search_id, event.type, event.message)

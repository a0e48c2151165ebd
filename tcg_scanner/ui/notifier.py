"""Scan event notifications with toast-style status messages."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from ..core.types import CommitResult, ScanResult, ScanSource
from ..utils.log import get_logger


@dataclass
class ScanEvent:
    """Something the user should hear about, rendered as a toast by listeners."""
    kind: str
    title: str
    message: str
    level: str = "info"
    payload: Dict[str, Any] = field(default_factory=dict)


Listener = Callable[[ScanEvent], None]


def scan_event(result: ScanResult) -> ScanEvent:
    if result.error:
        return ScanEvent(
            kind="scan_issue",
            title="Scan Issue",
            message=result.error,
            level="warning",
            payload={"errorCode": result.error_code},
        )
    if result.needs_selection:
        return ScanEvent(
            kind="choose_candidate",
            title="Multiple Matches",
            message=f"{len(result.candidates)} possible cards found. Pick the one you scanned.",
            payload={"cardKey": result.card_key},
        )
    description = result.card_name or ""
    if result.set_name:
        description += f" from {result.set_name}"
    cached = result.source == ScanSource.CACHE
    return ScanEvent(
        kind="found_in_cache" if cached else "card_identified",
        title="Found in Cache!" if cached else "Card Identified!",
        message=description,
        level="success",
        payload={"cardKey": result.card_key},
    )


def rate_limited_event(retry_after_s: int) -> ScanEvent:
    return ScanEvent(
        kind="rate_limited",
        title="Rate Limit Reached",
        message="You've reached the scan limit. Please wait a minute before trying again.",
        level="error",
        payload={"retryAfter": retry_after_s},
    )


def commit_event(result: CommitResult) -> ScanEvent:
    return ScanEvent(
        kind="image_saved",
        title="Card Added!",
        message=f"{result.title} has been added to your binder.",
        level="success",
        payload={"cardKey": result.card_key, "cached": result.cached},
    )


class ScanNotifier:
    """Fans scan events out to registered listeners and the log."""

    def __init__(self):
        self.logger = get_logger(__name__)
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def status_toast(self, message: str, level: str = "info"):
        """Log a status message at the matching level."""
        if level == "success":
            self.logger.info(f"SUCCESS: {message}")
        elif level == "error":
            self.logger.error(f"ERROR: {message}")
        elif level == "warning":
            self.logger.warning(f"WARNING: {message}")
        else:
            self.logger.info(f"INFO: {message}")

    def publish(self, event: ScanEvent) -> None:
        self.status_toast(f"{event.title} {event.message}".strip(), event.level)
        for listener in list(self._listeners):
            # Listener failures never reach the scan or commit that raised the event
            try:
                listener(event)
            except Exception as e:
                self.logger.warning("Event listener failed", kind=event.kind, error=str(e))


# Global singleton
notifier = ScanNotifier()

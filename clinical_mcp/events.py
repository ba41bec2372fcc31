import inspect
from typing import Any, Callable, Dict, List

from loguru import logger

SESSION_CREATED = "session_created"
SESSION_INITIALIZED = "session_initialized"
SYMPTOMS_ADDED = "symptoms_added"
DIAGNOSIS_SET = "diagnosis_set"
PRESCRIPTION_GENERATED = "prescription_generated"
DRUG_INTERACTIONS_CHECKED = "drug_interactions_checked"
SESSION_CLOSED = "session_closed"
SESSION_ERROR = "session_error"

EventHandler = Callable[[str, Dict[str, Any]], Any]


class EventBus:
    """In-process publish/subscribe for session events.

    Handlers receive ``(event_name, payload)`` and may be plain functions or
    coroutine functions. A handler that raises is logged and skipped so a
    broken subscriber cannot fail the clinical step that emitted the event.
    """

    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = {}

    def subscribe(self, event: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def unsubscribe(self, event: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    async def emit(self, event: str, payload: Dict[str, Any]) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(event, payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Event handler failed for {event}")

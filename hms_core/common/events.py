# backend/hms_core/common/events.py
import logging
from collections import defaultdict
from typing import Callable, Dict, List, Any

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], None]

_registry: Dict[str, List[Handler]] = defaultdict(list)


def subscribe(event_name: str):
    """
    Decorator to register an event handler (registering twice is a no-op).

        @subscribe("prescription.created")
        def on_prescription_created(payload): ...
    """
    def _decorator(fn: Handler) -> Handler:
        handlers = _registry[event_name]
        if fn not in handlers:
            handlers.append(fn)
        return fn
    return _decorator


def publish(event_name: str, payload: Dict[str, Any]) -> int:
    """
    Run every subscriber synchronously, inside the caller's transaction.
    A failing handler propagates and rolls the publisher back with it.
    Payloads carry ids plus plain values (no model instances), so apps
    never import each other's models.
    Returns the number of handlers run.
    """
    handlers = list(_registry.get(event_name, ()))
    logger.debug("event %s -> %d handler(s)", event_name, len(handlers))
    for handler in handlers:
        handler(payload)
    return len(handlers)

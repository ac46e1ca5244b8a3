# backend/hms_core/common/log_filters.py
from __future__ import annotations

import logging


class RequestIdFilter(logging.Filter):
    """
    Guarantees every record has a `request_id` attribute so the verbose
    formatter never fails. Views pass it explicitly via `extra=`.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = "-"
        return True

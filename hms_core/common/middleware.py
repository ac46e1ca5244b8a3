# backend/hms_core/common/middleware.py
from __future__ import annotations

import re

from django.utils.deprecation import MiddlewareMixin

from hms_core.common.api.exceptions import ensure_request_id

_SAFE_RID = re.compile(r"^[A-Za-z0-9\-_.]{1,64}$")


class RequestIdMiddleware(MiddlewareMixin):
    """
    Attaches request.request_id (reusing a sane incoming X-Request-ID) and
    echoes it back on the response. Error envelopes and log records use it.
    """

    HEADER = "X-Request-ID"

    def process_request(self, request):
        incoming = request.META.get("HTTP_X_REQUEST_ID", "")
        if incoming and _SAFE_RID.match(incoming):
            request.request_id = incoming
        ensure_request_id(request)
        return None

    def process_response(self, request, response):
        rid = getattr(request, "request_id", None)
        if rid:
            response[self.HEADER] = rid
        return response

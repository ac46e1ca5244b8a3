# backend/hms_core/common/openapi.py
from __future__ import annotations

from drf_spectacular.openapi import AutoSchema
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter


class HMSAutoSchema(AutoSchema):
    """
    Global OpenAPI improvements for the HMS API:

    - Documents the optional Idempotency-Key header on POST endpoints
    - Documents the X-Request-ID correlation header everywhere
    """

    IDEMPOTENCY_HEADER = OpenApiParameter(
        name="Idempotency-Key",
        type=OpenApiTypes.STR,
        location=OpenApiParameter.HEADER,
        required=False,
        description="Optional key for safely retrying POST requests (payments, bills, bookings).",
    )

    REQUEST_ID_HEADER = OpenApiParameter(
        name="X-Request-ID",
        type=OpenApiTypes.STR,
        location=OpenApiParameter.HEADER,
        required=False,
        description="Optional correlation id. Echoed back and included in error envelopes.",
    )

    def get_override_parameters(self):
        params = list(super().get_override_parameters() or [])
        existing = {p.name.lower() for p in params if isinstance(p, OpenApiParameter)}

        if self.method == "POST" and "idempotency-key" not in existing:
            params.append(self.IDEMPOTENCY_HEADER)

        if "x-request-id" not in existing:
            params.append(self.REQUEST_ID_HEADER)

        return params


def preprocess_exclude_legacy_api(endpoints):
    """
    drf-spectacular preprocessing hook. config/urls.py mounts the API twice
    (/api/v1/ and the legacy /api/ alias); only /api/v1/* goes in the schema,
    which keeps operationIds free of list2/retrieve2 suffixes.
    """
    return [
        (path, path_regex, method, callback)
        for path, path_regex, method, callback in endpoints
        if path.startswith("/api/v1/") or not path.startswith("/api/")
    ]

# backend/hms_core/common/idempotency.py
"""
Replay protection for retried POSTs (bookings, prescriptions, bills, payments).

A client sends `Idempotency-Key: <key>`; the first successful response is
stored under (user, method, path, key) and returned verbatim for every
retry until the key expires (COMMON_IDEMPOTENCY_TTL_HOURS, default 24).
"""
from __future__ import annotations

import json
import threading
from datetime import timedelta

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import IntegrityError, transaction
from django.utils import timezone

from hms_core.common.models import IdempotencyRecord

_LOCK = threading.Lock()
_STORE = {}  # single-process fallback: key -> (expires_at, response_data)


def _use_db() -> bool:
    # off: per-process memory store (local dev); on: IdempotencyRecord rows
    return bool(getattr(settings, "COMMON_IDEMPOTENCY_USE_DB", False))


def _ttl() -> timedelta:
    return timedelta(hours=float(getattr(settings, "COMMON_IDEMPOTENCY_TTL_HOURS", 24)))


def get_key(request):
    # test client: HTTP_IDEMPOTENCY_KEY=...; real clients: Idempotency-Key header
    return request.META.get("HTTP_IDEMPOTENCY_KEY")


def _norm(user_id, method, path, key):
    return (str(user_id), method.upper(), path, str(key))


def _matching(user_id, method, path, key):
    return IdempotencyRecord.objects.filter(
        user_id=int(user_id),
        method=method.upper(),
        path=path,
        idempotency_key=str(key),
    )


def load_response(user_id, method, path, key):
    if not key:
        return None
    now = timezone.now()

    if not _use_db():
        with _LOCK:
            hit = _STORE.get(_norm(user_id, method, path, key))
        if hit is None or hit[0] <= now:
            return None
        return hit[1]

    rec = _matching(user_id, method, path, key).filter(expires_at__gt=now).first()
    return None if rec is None else rec.response_data


def save_response(user_id, method, path, key, response_data, status_code: int = 200):
    if not key:
        return

    response_data = json.loads(json.dumps(response_data, cls=DjangoJSONEncoder))
    expires_at = timezone.now() + _ttl()

    if not _use_db():
        with _LOCK:
            _STORE[_norm(user_id, method, path, key)] = (expires_at, response_data)
        return

    try:
        with transaction.atomic():
            # an expired row would otherwise block the key forever
            _matching(user_id, method, path, key).filter(expires_at__lte=timezone.now()).delete()
            IdempotencyRecord.objects.create(
                user_id=int(user_id),
                method=method.upper(),
                path=path,
                idempotency_key=str(key),
                status_code=int(status_code),
                response_data=response_data,
                expires_at=expires_at,
            )
    except IntegrityError:
        # a concurrent request stored it first
        return


def purge_expired() -> int:
    """
    Drop expired keys from both stores. Returns the number of DB rows deleted.
    """
    now = timezone.now()
    with _LOCK:
        for k in [k for k, (exp, _) in _STORE.items() if exp <= now]:
            del _STORE[k]
    deleted, _ = IdempotencyRecord.objects.filter(expires_at__lte=now).delete()
    return deleted


def clear_memory_store() -> None:
    with _LOCK:
        _STORE.clear()

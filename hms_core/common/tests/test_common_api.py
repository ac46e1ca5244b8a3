# backend/hms_core/common/tests/test_common_api.py
import logging
import uuid
from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.utils import timezone

from hms_core.common import events
from hms_core.common.codes import appointment_code, numeric_code, unique_code
from hms_core.common.idempotency import clear_memory_store, load_response, save_response
from hms_core.common.log_filters import RequestIdFilter
from hms_core.common.models import IdempotencyRecord
from hms_core.patients.models import Patient

pytestmark = pytest.mark.django_db


def test_error_envelope_carries_request_id(client_for, receptionist):
    r = client_for(receptionist).get(f"/api/v1/patients/{uuid.uuid4()}/")

    assert r.status_code == 404
    err = r.data["error"]
    assert set(err) == {"code", "message", "details", "request_id"}
    assert err["code"] == "not_found"
    assert err["request_id"] == r["X-Request-ID"]


def test_incoming_request_id_is_reused(client_for, receptionist):
    r = client_for(receptionist).get("/api/v1/patients/", HTTP_X_REQUEST_ID="trace-abc.1")
    assert r["X-Request-ID"] == "trace-abc.1"


def test_unsafe_request_id_is_replaced(client_for, receptionist):
    r = client_for(receptionist).get("/api/v1/patients/", HTTP_X_REQUEST_ID="bad id <script>")
    assert r["X-Request-ID"] != "bad id <script>"
    assert len(r["X-Request-ID"]) == 32


def test_validation_error_envelope(client_for, receptionist):
    r = client_for(receptionist).post("/api/v1/patients/", {}, format="json")

    assert r.status_code == 400
    assert r.data["error"]["code"] == "validation_error"
    assert r.data["error"]["message"] == "Request failed."
    assert "full_name" in r.data["error"]["details"]


def test_legacy_prefix_still_routes(client_for, receptionist):
    assert client_for(receptionist).get("/api/patients/").status_code == 200


def test_pagination_contract(client_for, receptionist, make_user):
    for _ in range(3):
        make_user("PATIENT")
    r = client_for(receptionist).get("/api/v1/patients/", {"page_size": 2})

    assert set(r.data) == {"count", "next", "previous", "results"}
    assert r.data["count"] == 3
    assert len(r.data["results"]) == 2
    assert r.data["next"]


def test_idempotency_store_db_backend(settings):
    settings.COMMON_IDEMPOTENCY_USE_DB = True
    save_response(7, "post", "/api/v1/bills/", "k1", {"id": uuid.UUID(int=1)}, status_code=201)
    save_response(7, "POST", "/api/v1/bills/", "k1", {"id": "other"}, status_code=201)

    assert load_response(7, "POST", "/api/v1/bills/", "k1") == {"id": str(uuid.UUID(int=1))}
    assert load_response(8, "POST", "/api/v1/bills/", "k1") is None
    assert IdempotencyRecord.objects.count() == 1


def test_idempotency_store_memory_backend(settings):
    settings.COMMON_IDEMPOTENCY_USE_DB = False
    save_response(7, "POST", "/x/", "k", {"ok": True})
    assert load_response(7, "POST", "/x/", "k") == {"ok": True}
    assert load_response(7, "POST", "/x/", None) is None

    clear_memory_store()
    assert load_response(7, "POST", "/x/", "k") is None
    assert IdempotencyRecord.objects.count() == 0


def test_expired_key_can_be_reused(settings):
    settings.COMMON_IDEMPOTENCY_USE_DB = True
    save_response(7, "POST", "/x/", "k", {"n": 1})
    IdempotencyRecord.objects.update(expires_at=timezone.now() - timedelta(minutes=1))

    assert load_response(7, "POST", "/x/", "k") is None
    save_response(7, "POST", "/x/", "k", {"n": 2})
    assert load_response(7, "POST", "/x/", "k") == {"n": 2}
    assert IdempotencyRecord.objects.count() == 1


def test_purge_idempotency_keys_command(settings):
    settings.COMMON_IDEMPOTENCY_USE_DB = True
    save_response(7, "POST", "/x/", "old", {})
    save_response(7, "POST", "/x/", "fresh", {})
    IdempotencyRecord.objects.filter(idempotency_key="old").update(expires_at=timezone.now())

    out = StringIO()
    call_command("purge_idempotency_keys", stdout=out)
    assert "deleted: 1" in out.getvalue()
    assert list(IdempotencyRecord.objects.values_list("idempotency_key", flat=True)) == ["fresh"]


def test_events_publish_to_subscribers(monkeypatch):
    monkeypatch.setattr(events, "_registry", events.defaultdict(list))
    seen = []

    @events.subscribe("thing.happened")
    def _handler(payload):
        seen.append(payload["id"])

    # double registration is ignored
    events.subscribe("thing.happened")(_handler)

    assert events.publish("thing.happened", {"id": 1}) == 1
    assert events.publish("nobody.listens", {"id": 2}) == 0
    assert seen == [1]


def test_code_factories():
    assert numeric_code("PR", digits=4)[:2] == "PR"
    assert len(numeric_code("PR", digits=4)) == 6

    code = appointment_code()
    assert code[:2] == "AP" and code[2:8].isdigit() and code[8:].isalpha() and len(code) == 11


def test_unique_code_gives_up(patient):
    with pytest.raises(RuntimeError):
        unique_code(Patient, "patient_code", lambda: patient.patient_code, attempts=3)


def test_request_id_filter_defaults():
    record = logging.LogRecord("hms_core", logging.INFO, __file__, 1, "hello", None, None)
    assert RequestIdFilter().filter(record)
    assert record.request_id == "-"

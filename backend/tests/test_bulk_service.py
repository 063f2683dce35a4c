"""Bulk operations over many signature requests"""
from datetime import timedelta

import pytest

from signflow.domain.enums import SignatureStatus, SigningOrder


def test_bulk_cancel_reports_every_item(container, create_request, alice, bob):
    open_request, _ = create_request("bob@example.com")
    done, signers = create_request("bob@example.com")
    container.signing.sign(done.request_id, signers[0].signer_id, bob, "sig", "draw")

    result = container.bulk.execute_bulk_operation(
        alice, "cancel", [open_request.request_id, done.request_id, "SR-missing"], {"reason": "Cleanup"}
    )

    assert result.success
    summary = result.data
    assert (summary.total, summary.successful, summary.failed) == (3, 1, 2)
    codes = {e.id: e.code for e in summary.errors}
    assert codes == {done.request_id: "CONFLICT", "SR-missing": "NOT_FOUND"}
    cancelled = container.store.get_request(open_request.request_id)
    assert cancelled.status == SignatureStatus.CANCELLED
    assert cancelled.metadata["cancellation_reason"] == "Cleanup"


def test_bulk_refuses_foreign_requests(container, create_request, alice, bob):
    mine, _ = create_request("bob@example.com")
    theirs, _ = create_request("alice@example.com", actor=bob)

    result = container.bulk.execute_bulk_operation(alice, "cancel", [mine.request_id, theirs.request_id])

    assert result.error.code == "AUTHORIZATION_ERROR"
    assert container.store.get_request(mine.request_id).status == SignatureStatus.INITIATED


def test_bulk_deduplicates_ids(container, create_request, alice):
    request, _ = create_request("bob@example.com")

    result = container.bulk.execute_bulk_operation(
        alice, "delete", [request.request_id, request.request_id]
    ).data

    assert (result.total, result.successful, result.failed) == (1, 1, 0)


@pytest.mark.parametrize("operation,ids,parameters,field", [
    ("archive", ["SR-1"], {}, "operation"),
    ("cancel", [], {}, "request_ids"),
    ("extend_expiration", ["SR-1"], {}, "parameters.days"),
    ("extend_expiration", ["SR-1"], {"days": 0}, "days"),
])
def test_bulk_preflight_validation(container, alice, operation, ids, parameters, field):
    result = container.bulk.execute_bulk_operation(alice, operation, ids, parameters)

    assert result.error.code == "VALIDATION_ERROR"
    assert result.error.details["field"] == field


def test_bulk_size_limit(container, alice, config):
    config.max_bulk_operation_size = 3

    result = container.bulk.execute_bulk_operation(alice, "cancel", [f"SR-{i}" for i in range(4)])

    assert result.error.code == "VALIDATION_ERROR"
    assert result.error.details["count"] == 4


def test_bulk_is_rate_limited(container, alice, config):
    config.rate_limit_bulk_operations_per_hour = 1

    first = container.bulk.execute_bulk_operation(alice, "cancel", ["SR-missing"])
    second = container.bulk.execute_bulk_operation(alice, "cancel", ["SR-missing"])

    assert first.success
    assert second.error.code == "RATE_LIMIT_EXCEEDED"


def test_bulk_extend_expiration(container, create_request, alice):
    first, _ = create_request("bob@example.com", expires_in_days=10)
    second, _ = create_request("carol@example.com", expires_in_days=360)

    result = container.bulk.execute_bulk_operation(
        alice, "extend_expiration", [first.request_id, second.request_id], {"days": 10}
    ).data

    assert result.successful == 1
    assert [(e.id, e.code) for e in result.errors] == [(second.request_id, "VALIDATION_ERROR")]
    assert container.store.get_request(first.request_id).expires_at == first.expires_at + timedelta(days=10)


def test_bulk_remind_maps_throttling(container, create_request, alice):
    request, _ = create_request("bob@example.com")
    container.requests.send_reminder(request.request_id, alice)

    result = container.bulk.execute_bulk_operation(alice, "remind", [request.request_id]).data

    assert [e.code for e in result.errors] == ["RATE_LIMIT_EXCEEDED"]


def test_bulk_export_returns_request_records(container, create_request, alice):
    first, _ = create_request("bob@example.com", title="First")
    second, _ = create_request("carol@example.com", title="Second")

    result = container.bulk.execute_bulk_operation(
        alice, "export", [first.request_id, second.request_id, "SR-missing"]
    ).data

    assert result.payload["format"] == "json"
    assert result.payload["exported_at"] == "2024-03-01T09:00:00Z"
    records = result.payload["records"]
    assert [r["title"] for r in records] == ["First", "Second"]
    assert records[0]["signers"][0]["signer_email"] == "bob@example.com"
    assert [e.code for e in result.errors] == ["NOT_FOUND"]


def test_bulk_item_crash_is_reported_as_unknown(container, create_request, alice):
    ok, _ = create_request("bob@example.com")
    broken, _ = create_request("carol@example.com")
    service = container.bulk.request_service
    original = service.cancel_request

    def cancel(request_id, actor, reason=None):
        if request_id == broken.request_id:
            raise RuntimeError("boom")
        return original(request_id, actor, reason)

    service.cancel_request = cancel
    try:
        result = container.bulk.execute_bulk_operation(alice, "cancel", [ok.request_id, broken.request_id]).data
    finally:
        del service.cancel_request

    assert result.successful == 1
    assert [(e.id, e.code) for e in result.errors] == [(broken.request_id, "UNKNOWN_ERROR")]


def test_bulk_runs_items_concurrently(container, create_request, alice, config):
    config.bulk_max_workers = 4
    requests = [
        create_request("bob@example.com", signing_order=SigningOrder.PARALLEL.value)[0]
        for _ in range(6)
    ]

    result = container.bulk.execute_bulk_operation(
        alice, "cancel", [r.request_id for r in requests]
    ).data

    assert (result.successful, result.failed) == (6, 0)
    assert all(
        container.store.get_request(r.request_id).status == SignatureStatus.CANCELLED for r in requests
    )


def test_bulk_export_echoes_any_format(container, create_request, alice):
    request, _ = create_request("bob@example.com")

    result = container.bulk.execute_bulk_operation(
        alice, "export", [request.request_id], {"format": "csv"}
    )

    assert result.success
    assert (result.data.successful, result.data.failed) == (1, 0)
    assert result.data.payload["format"] == "csv"
    assert [r["request_id"] for r in result.data.payload["records"]] == [request.request_id]

"""Expiration sweep, warnings and extensions"""
from datetime import timedelta

from signflow.domain.enums import AuditAction, NotificationEvent, SignatureStatus, SignerStatus
from signflow.scheduler.expiration_scheduler import ExpirationScheduler


def test_sweep_expires_overdue_requests(container, create_request, clock, notifier):
    overdue, _ = create_request("bob@example.com", expires_in_days=1)
    fresh, _ = create_request("carol@example.com", expires_in_days=30)
    clock.advance(days=1)

    result = container.expirations.check_expirations()

    assert result.success
    assert result.data.checked == 1
    assert result.data.expired == 1
    assert container.store.get_request(overdue.request_id).status == SignatureStatus.EXPIRED
    assert container.store.get_request(fresh.request_id).status == SignatureStatus.INITIATED
    assert {s.status for s in container.store.get_signers(overdue.request_id)} == {SignerStatus.EXPIRED}
    [expired] = notifier.of(NotificationEvent.REQUEST_EXPIRED)
    assert expired["recipients"] == ["alice@example.com", "bob@example.com"]


def test_second_sweep_changes_nothing(container, create_request, clock, notifier):
    request, _ = create_request("bob@example.com", expires_in_days=1)
    clock.advance(days=2)

    first = container.expirations.check_expirations().data
    second = container.expirations.check_expirations().data

    assert first.expired == 1
    assert second.checked == 0
    assert second.expired == 0
    assert len(notifier.of(NotificationEvent.REQUEST_EXPIRED)) == 1
    assert len(container.audit_writer.repo.get_entries_for_request(
        request.request_id, actions=[AuditAction.EXPIRED]
    )) == 1


def test_completed_requests_never_expire(container, create_request, bob, clock):
    request, signers = create_request("bob@example.com", expires_in_days=1)
    container.signing.sign(request.request_id, signers[0].signer_id, bob, "sig", "draw")
    clock.advance(days=2)

    result = container.expirations.check_expirations().data

    assert result.expired == 0
    assert container.store.get_request(request.request_id).status == SignatureStatus.COMPLETED


def test_signed_signers_keep_their_status_on_expiry(container, create_request, bob, clock):
    request, signers = create_request("bob@example.com", "carol@example.com", expires_in_days=1)
    container.signing.sign(request.request_id, signers[0].signer_id, bob, "sig", "draw")
    clock.advance(days=1)

    container.expirations.check_expirations()

    statuses = [s.status for s in container.store.get_signers(request.request_id)]
    assert statuses == [SignerStatus.SIGNED, SignerStatus.EXPIRED]


def test_warnings_are_sent_once_per_offset(container, create_request, clock, notifier):
    request, _ = create_request("bob@example.com", expires_in_days=10)
    clock.advance(days=2, hours=1)

    first = container.expirations.check_expirations().data
    second = container.expirations.check_expirations().data

    assert first.warnings_sent == 1
    assert second.warnings_sent == 0
    [warning] = notifier.of(NotificationEvent.EXPIRATION_WARNING)
    assert warning["payload"]["days_remaining"] == 7
    assert warning["recipients"] == ["alice@example.com", "bob@example.com"]
    assert container.store.get_request(request.request_id).expiration_warnings_sent == [7]


def test_each_offset_fires_as_expiry_approaches(container, create_request, clock, notifier):
    create_request("bob@example.com", expires_in_days=10)

    sent = []
    start = clock.now()
    for days_left in (7, 3, 1):
        clock.current = start + timedelta(days=9 - days_left, hours=1)
        container.expirations.check_expirations()
        sent.append([w["payload"]["days_remaining"] for w in notifier.of(NotificationEvent.EXPIRATION_WARNING)])

    assert sent == [[7], [7, 3], [7, 3, 1]]


def test_expire_request_directly(container, create_request, clock):
    request, _ = create_request("bob@example.com", expires_in_days=1)

    early = container.expirations.expire_request(request.request_id)
    clock.advance(days=1)
    first = container.expirations.expire_request(request.request_id)
    again = container.expirations.expire_request(request.request_id)
    missing = container.expirations.expire_request("SR-missing")

    assert early.error.code == "CONFLICT"
    assert first.data is True
    assert again.data is False
    assert missing.error.code == "NOT_FOUND"


def test_extend_pushes_expiry_and_resets_warnings(container, create_request, alice, clock):
    request, _ = create_request("bob@example.com", expires_in_days=10)
    clock.advance(days=2, hours=1)
    container.expirations.check_expirations()

    result = container.expirations.extend_expiration(request.request_id, alice, 5)

    assert result.success
    assert result.data.expires_at == request.expires_at + timedelta(days=5)
    assert result.data.expiration_warnings_sent == []
    [entry] = container.audit_writer.repo.get_entries_for_request(
        request.request_id, actions=[AuditAction.EXTENDED]
    )
    assert entry.details["days"] == 5


def test_extend_validation(container, create_request, alice, bob):
    request, _ = create_request("bob@example.com", expires_in_days=300)

    assert container.expirations.extend_expiration(request.request_id, alice, 0).error.code == "VALIDATION_ERROR"
    assert container.expirations.extend_expiration(request.request_id, alice, True).error.code == "VALIDATION_ERROR"
    lifetime = container.expirations.extend_expiration(request.request_id, alice, 100)
    assert lifetime.error.code == "VALIDATION_ERROR"
    assert lifetime.error.details["lifetime_days"] == 400
    assert container.expirations.extend_expiration(request.request_id, bob, 5).error.code == "AUTHORIZATION_ERROR"


def test_extend_closed_request_is_a_conflict(container, create_request, alice):
    request, _ = create_request("bob@example.com")
    container.requests.cancel_request(request.request_id, alice)

    result = container.expirations.extend_expiration(request.request_id, alice, 5)

    assert result.error.code == "CONFLICT"


def test_upcoming_expirations_for_the_initiator(container, create_request, alice, bob):
    soon, _ = create_request("bob@example.com", expires_in_days=3)
    create_request("bob@example.com", expires_in_days=20)
    create_request("alice@example.com", actor=bob, expires_in_days=2)

    result = container.expirations.get_expiring_requests(alice, days_ahead=7)

    assert [r.request_id for r in result.data] == [soon.request_id]
    assert container.expirations.get_expiring_requests(alice, days_ahead=0).error.code == "VALIDATION_ERROR"


def test_scheduler_run_once_sets_correlation_id(container, create_request, clock):
    request, _ = create_request("bob@example.com", expires_in_days=1)
    clock.advance(days=1)

    result = ExpirationScheduler(container.expirations, interval_minutes=5).run_once()

    assert result.data.expired == 1
    [entry] = container.audit_writer.repo.get_entries_for_request(
        request.request_id, actions=[AuditAction.EXPIRED]
    )
    assert entry.actor_id == "system"
    assert entry.correlation_id.startswith("COR-")


def test_scheduler_start_and_stop(container):
    scheduler = ExpirationScheduler(container.expirations, interval_minutes=5)

    scheduler.start()
    try:
        assert scheduler.is_running
        assert scheduler.scheduler.get_job("check_expirations") is not None
    finally:
        scheduler.stop()
    assert not scheduler.is_running

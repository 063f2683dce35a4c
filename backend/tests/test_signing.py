"""Signing: completion counting, signing order, TOTP and concurrency"""
from signflow.domain.enums import (
    AuditAction, NotificationEvent, SignatureStatus, SignerStatus, SigningOrder
)
from signflow.domain.models import ActorContext

from .conftest import VALID_TOTP


def sign_as(container, actor, request_id, signer_id, **kwargs):
    kwargs.setdefault("signature_data", "data:image/png;base64,AAAA")
    kwargs.setdefault("signature_method", "draw")
    return container.signing.sign(request_id, signer_id, actor, **kwargs)


def test_single_signer_completes_request(container, create_request, bob, notifier):
    request, signers = create_request("bob@example.com")

    result = sign_as(container, bob, request.request_id, signers[0].signer_id)

    assert result.success
    assert result.data.request.status == SignatureStatus.COMPLETED
    assert result.data.request.completed_signers == 1
    assert result.data.request.completed_at is not None
    assert result.data.signer.status == SignerStatus.SIGNED
    assert result.data.signer.signature_method.value == "draw"

    completed = notifier.of(NotificationEvent.REQUEST_COMPLETED)
    assert len(completed) == 1
    assert completed[0]["recipients"][0] == "alice@example.com"

    actions = [e.action for e in container.audit_writer.repo.get_entries_for_request(request.request_id)]
    assert AuditAction.SIGNED in actions
    assert AuditAction.COMPLETED in actions


def test_sequential_signers_must_wait_their_turn(container, create_request, bob, carol):
    request, signers = create_request("bob@example.com", "carol@example.com")
    bob_row, carol_row = signers

    early = sign_as(container, carol, request.request_id, carol_row.signer_id)
    assert not early.success
    assert early.error.code == "AUTHORIZATION_ERROR"
    assert early.error.message == "It is not your turn to sign yet"
    assert container.signing.validate_signing_permission(request.request_id, carol_row.signer_id) is False

    first = sign_as(container, bob, request.request_id, bob_row.signer_id)
    assert first.success
    assert first.data.request.status == SignatureStatus.IN_PROGRESS
    assert first.data.request.completed_signers == 1

    assert container.signing.validate_signing_permission(request.request_id, carol_row.signer_id) is True
    second = sign_as(container, carol, request.request_id, carol_row.signer_id)
    assert second.success
    assert second.data.request.status == SignatureStatus.COMPLETED
    assert second.data.request.completed_signers == 2


def test_next_sequential_signer_is_notified(container, create_request, bob, notifier):
    request, signers = create_request("bob@example.com", "carol@example.com")
    notifier.events.clear()

    sign_as(container, bob, request.request_id, signers[0].signer_id)

    requested = notifier.of(NotificationEvent.SIGNATURE_REQUESTED)
    assert [e["recipients"] for e in requested] == [["carol@example.com"]]
    assert container.store.get_signer(signers[1].signer_id).status == SignerStatus.SENT


def test_parallel_signers_sign_in_any_order(container, create_request, bob, carol):
    request, signers = create_request(
        "bob@example.com", "carol@example.com", signing_order=SigningOrder.PARALLEL.value
    )

    assert sign_as(container, carol, request.request_id, signers[1].signer_id).success
    result = sign_as(container, bob, request.request_id, signers[0].signer_id)

    assert result.data.request.status == SignatureStatus.COMPLETED


def test_signing_twice_is_a_conflict(container, create_request, bob):
    request, signers = create_request("bob@example.com", "carol@example.com")
    assert sign_as(container, bob, request.request_id, signers[0].signer_id).success

    again = sign_as(container, bob, request.request_id, signers[0].signer_id)

    assert again.error.code == "CONFLICT"
    assert container.store.get_request(request.request_id).completed_signers == 1


def test_only_the_assigned_signer_may_sign(container, create_request, mallory):
    request, signers = create_request("bob@example.com")

    result = sign_as(container, mallory, request.request_id, signers[0].signer_id)

    assert result.error.code == "AUTHORIZATION_ERROR"


def test_signer_email_match_is_case_insensitive(container, create_request):
    request, signers = create_request("Bob@Example.com")
    actor = ActorContext(user_id="someone-else", email="bob@example.com")

    assert sign_as(container, actor, request.request_id, signers[0].signer_id).success


def test_signer_of_another_request_is_not_found(container, create_request, bob):
    first, _ = create_request("bob@example.com")
    _, other_signers = create_request("bob@example.com")

    result = sign_as(container, bob, first.request_id, other_signers[0].signer_id)

    assert result.error.code == "NOT_FOUND"


def test_signing_an_expired_request(container, create_request, bob, clock):
    request, signers = create_request("bob@example.com", expires_in_days=1)
    clock.advance(days=2)

    result = sign_as(container, bob, request.request_id, signers[0].signer_id)

    assert result.error.code == "EXPIRED"


def test_signing_after_the_sweep_expired_the_request(container, create_request, bob, clock):
    request, signers = create_request("bob@example.com", expires_in_days=1)
    clock.advance(days=2)
    assert container.expirations.check_expirations().data.expired == 1

    result = sign_as(container, bob, request.request_id, signers[0].signer_id)

    assert result.error.code == "EXPIRED"
    assert container.store.get_signer(signers[0].signer_id).status == SignerStatus.EXPIRED


def test_signing_a_cancelled_request(container, create_request, alice, bob):
    request, signers = create_request("bob@example.com")
    container.requests.cancel_request(request.request_id, alice)

    result = sign_as(container, bob, request.request_id, signers[0].signer_id)

    assert result.error.code == "CONFLICT"


def test_signature_data_and_method_are_validated(container, create_request, bob):
    request, signers = create_request("bob@example.com")

    missing = sign_as(container, bob, request.request_id, signers[0].signer_id, signature_data="")
    bad_method = sign_as(container, bob, request.request_id, signers[0].signer_id, signature_method="stamp")

    assert missing.error.code == "VALIDATION_ERROR"
    assert bad_method.error.code == "VALIDATION_ERROR"
    assert bad_method.error.details["field"] == "signature_method"


def test_totp_required_when_configured(container, create_request, bob):
    request, signers = create_request("bob@example.com", require_totp=True)
    signer_id = signers[0].signer_id

    missing = sign_as(container, bob, request.request_id, signer_id)
    wrong = sign_as(container, bob, request.request_id, signer_id, totp_code="000000")
    ok = sign_as(container, bob, request.request_id, signer_id, totp_code=VALID_TOTP)

    assert missing.error.code == "VALIDATION_ERROR"
    assert wrong.error.code == "VALIDATION_ERROR"
    assert ok.success


def test_signer_row_is_released_when_request_closes_mid_sign(container, create_request, alice, bob):
    request, signers = create_request("bob@example.com", "carol@example.com")
    store = container.signing.store
    original = store.advance_completion

    def cancel_then_advance(request_id, total_signers, now):
        container.requests.cancel_request(request_id, alice)
        return original(request_id, total_signers, now)

    store.advance_completion = cancel_then_advance
    try:
        result = sign_as(container, bob, request.request_id, signers[0].signer_id)
    finally:
        store.advance_completion = original

    assert result.error.code == "CONFLICT"
    signer = container.store.get_signer(signers[0].signer_id)
    assert signer.status == SignerStatus.EXPIRED
    assert signer.signature_data is None
    assert container.store.get_request(request.request_id).completed_signers == 0


def test_interleaved_signers_each_advance_the_count(container, create_request, bob, carol, clock):
    """Both signers read the request before either writes; the counter still lands on 2"""
    request, signers = create_request(
        "bob@example.com", "carol@example.com", signing_order=SigningOrder.PARALLEL.value
    )
    store = container.signing.store
    original = store.advance_completion
    stale = {}

    def advance_after_other(request_id, total_signers, now):
        if not stale:
            stale["done"] = True
            # carol signs in full while bob sits between his claim and his increment
            inner = sign_as(container, carol, request_id, signers[1].signer_id)
            assert inner.success
        return original(request_id, total_signers, now)

    store.advance_completion = advance_after_other
    try:
        result = sign_as(container, bob, request.request_id, signers[0].signer_id)
    finally:
        store.advance_completion = original

    assert result.success
    final = container.store.get_request(request.request_id)
    assert final.completed_signers == 2
    assert final.status == SignatureStatus.COMPLETED
    assert result.data.request.status == SignatureStatus.COMPLETED

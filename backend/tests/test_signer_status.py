"""Per-signer status transitions"""
import pytest

from signflow.domain.enums import AuditAction, NotificationEvent, SignatureStatus, SignerStatus


def test_first_view_moves_request_in_progress(container, create_request, bob):
    request, signers = create_request("bob@example.com", "carol@example.com")
    assert signers[0].status == SignerStatus.SENT

    result = container.signing.update_signer_status(signers[0].signer_id, "viewed", actor=bob)

    assert result.success
    assert result.data.status == SignerStatus.VIEWED
    assert result.data.viewed_at is not None
    updated = container.store.get_request(request.request_id)
    assert updated.status == SignatureStatus.IN_PROGRESS
    assert updated.viewed_signers == 1


def test_decline_records_reason_and_notifies_initiator(container, create_request, bob, notifier):
    request, signers = create_request("bob@example.com")

    result = container.signing.update_signer_status(
        signers[0].signer_id, SignerStatus.DECLINED, actor=bob, decline_reason="Wrong amount"
    )

    assert result.success
    assert result.data.decline_reason == "Wrong amount"
    assert result.data.declined_at is not None
    declined = notifier.of(NotificationEvent.SIGNER_DECLINED)
    assert declined[0]["recipients"] == ["alice@example.com"]
    entries = container.audit_writer.repo.get_entries_for_request(
        request.request_id, actions=[AuditAction.DECLINED]
    )
    assert len(entries) == 1
    assert entries[0].details["decline_reason"] == "Wrong amount"


def test_decline_by_someone_else_is_refused(container, create_request, mallory):
    _, signers = create_request("bob@example.com")

    result = container.signing.update_signer_status(signers[0].signer_id, "declined", actor=mallory)

    assert result.error.code == "AUTHORIZATION_ERROR"


@pytest.mark.parametrize("status,code", [
    ("signed", "VALIDATION_ERROR"),
    ("pending", "CONFLICT"),
    ("archived", "VALIDATION_ERROR"),
])
def test_disallowed_target_statuses(container, create_request, status, code):
    _, signers = create_request("bob@example.com")

    result = container.signing.update_signer_status(signers[0].signer_id, status)

    assert result.error.code == code


def test_transitions_follow_the_status_graph(container, create_request, bob):
    _, signers = create_request("bob@example.com", "carol@example.com")
    carol_row = signers[1]
    assert carol_row.status == SignerStatus.PENDING

    assert container.signing.update_signer_status(carol_row.signer_id, "sent").success
    assert container.signing.update_signer_status(carol_row.signer_id, "viewed").success

    back = container.signing.update_signer_status(carol_row.signer_id, "sent")
    assert back.error.code == "CONFLICT"
    assert back.error.details == {"signer_id": carol_row.signer_id, "from": "viewed", "to": "sent"}


def test_no_view_on_a_closed_request(container, create_request, alice, bob):
    request, signers = create_request("bob@example.com")
    container.requests.cancel_request(request.request_id, alice)

    result = container.signing.update_signer_status(signers[0].signer_id, "viewed", actor=bob)

    assert result.error.code == "CONFLICT"


def test_unknown_signer(container):
    result = container.signing.update_signer_status("SGN-missing", "viewed")

    assert result.error.code == "NOT_FOUND"


def test_system_transition_is_audited_as_system(container, create_request):
    request, signers = create_request("bob@example.com")

    container.signing.update_signer_status(signers[0].signer_id, "expired")

    [entry] = container.audit_writer.repo.get_entries_for_request(
        request.request_id, actions=[AuditAction.EXPIRED]
    )
    assert entry.actor_id == "system"


def test_can_sign_for_unknown_ids_is_false(container, create_request):
    request, signers = create_request("bob@example.com")

    assert container.signing.validate_signing_permission("SR-missing", signers[0].signer_id) is False
    assert container.signing.validate_signing_permission(request.request_id, "SGN-missing") is False


@pytest.mark.parametrize("status", ["sent", "viewed", "declined", "expired", "cancelled"])
def test_stranger_cannot_move_a_signer(container, create_request, mallory, status):
    _, signers = create_request("bob@example.com", "carol@example.com")
    carol_row = signers[1]

    result = container.signing.update_signer_status(carol_row.signer_id, status, actor=mallory)

    assert result.error.code == "AUTHORIZATION_ERROR"
    assert container.store.get_signer(carol_row.signer_id).status == SignerStatus.PENDING


def test_initiator_sends_and_cancels_signers(container, create_request, alice, bob):
    _, signers = create_request("bob@example.com", "carol@example.com")

    sent = container.signing.update_signer_status(signers[1].signer_id, "sent", actor=alice)
    cancelled = container.signing.update_signer_status(signers[0].signer_id, "cancelled", actor=alice)

    assert sent.data.status == SignerStatus.SENT
    assert cancelled.data.status == SignerStatus.CANCELLED


def test_signer_cannot_cancel_their_own_row(container, create_request, bob):
    _, signers = create_request("bob@example.com")

    result = container.signing.update_signer_status(signers[0].signer_id, "cancelled", actor=bob)

    assert result.error.code == "AUTHORIZATION_ERROR"
    assert container.store.get_signer(signers[0].signer_id).status == SignerStatus.SENT


def test_view_requires_the_signer_to_have_been_sent(container, create_request, carol):
    _, signers = create_request("bob@example.com", "carol@example.com")

    result = container.signing.update_signer_status(signers[1].signer_id, "viewed", actor=carol)

    assert result.error.code == "CONFLICT"
    assert result.error.details["from"] == "pending"

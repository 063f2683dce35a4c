"""HTTP API"""
from .conftest import headers_for, request_payload


def create_via_api(client, actor, *emails, **overrides):
    response = client.post(
        "/api/v1/signature-requests",
        json=request_payload(*emails, **overrides),
        headers=headers_for(actor),
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_identity_headers_are_required(client):
    response = client.get("/api/v1/signature-requests")

    assert response.status_code == 401
    assert response.json()["detail"]["error"]["code"] == "AUTHENTICATION_ERROR"


def test_invalid_identity_email(client):
    response = client.get(
        "/api/v1/signature-requests", headers={"X-User-Id": "u-1", "X-User-Email": "not-an-email"}
    )

    assert response.status_code == 401


def test_create_and_fetch(client, alice, bob):
    created = create_via_api(client, alice, "bob@example.com", "carol@example.com")

    response = client.get(f"/api/v1/signature-requests/{created['request_id']}", headers=headers_for(bob))

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "initiated"
    assert [s["signer_email"] for s in body["signers"]] == ["bob@example.com", "carol@example.com"]
    assert "X-Correlation-Id" in response.headers


def test_create_validation_error_shape(client, alice):
    response = client.post(
        "/api/v1/signature-requests",
        json=request_payload("bob@example.com", "BOB@example.com"),
        headers=headers_for(alice),
    )

    assert response.status_code == 400
    error = response.json()["detail"]["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"]["duplicates"] == ["bob@example.com"]


def test_malformed_body_is_400(client, alice):
    response = client.post(
        "/api/v1/signature-requests", json={"title": "Missing fields"}, headers=headers_for(alice)
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_forbidden_and_missing(client, alice, mallory):
    created = create_via_api(client, alice, "bob@example.com")

    forbidden = client.get(f"/api/v1/signature-requests/{created['request_id']}", headers=headers_for(mallory))
    missing = client.get("/api/v1/signature-requests/SR-missing", headers=headers_for(alice))

    assert forbidden.status_code == 403
    assert missing.status_code == 404


def test_list_with_status_filter(client, alice):
    first = create_via_api(client, alice, "bob@example.com", title="First")
    create_via_api(client, alice, "bob@example.com", title="Second")
    client.post(f"/api/v1/signature-requests/{first['request_id']}/cancel",
                json={"reason": "Superseded"}, headers=headers_for(alice))

    response = client.get(
        "/api/v1/signature-requests",
        params={"status": "cancelled,expired", "view": "sent"},
        headers=headers_for(alice),
    )

    body = response.json()
    assert [r["title"] for r in body["items"]] == ["First"]
    assert body["pagination"]["total"] == 1


def test_sign_flow(client, alice, bob, carol):
    created = create_via_api(client, alice, "bob@example.com", "carol@example.com")
    detail = client.get(f"/api/v1/signature-requests/{created['request_id']}", headers=headers_for(alice)).json()
    bob_id, carol_id = [s["signer_id"] for s in detail["signers"]]
    base = f"/api/v1/signature-requests/{created['request_id']}/signers"
    signature = {"signature_data": "Bob", "signature_method": "type"}

    early = client.post(f"{base}/{carol_id}/sign", json=signature, headers=headers_for(carol))
    can_sign = client.get(f"{base}/{carol_id}/can-sign", headers=headers_for(carol)).json()
    first = client.post(f"{base}/{bob_id}/sign", json=signature, headers=headers_for(bob))
    second = client.post(f"{base}/{carol_id}/sign", json=signature, headers=headers_for(carol))

    assert early.status_code == 403
    assert can_sign["can_sign"] is False
    assert first.status_code == 200
    assert first.json()["request"]["status"] == "in_progress"
    assert second.json()["request"]["status"] == "completed"
    assert second.json()["request"]["completed_signers"] == 2


def test_signer_status_route(client, alice, bob):
    created = create_via_api(client, alice, "bob@example.com")
    detail = client.get(f"/api/v1/signature-requests/{created['request_id']}", headers=headers_for(alice)).json()
    signer_id = detail["signers"][0]["signer_id"]

    viewed = client.post(
        f"/api/v1/signature-requests/{created['request_id']}/signers/{signer_id}/status",
        json={"status": "viewed"},
        headers=headers_for(bob),
    )
    wrong_request = client.post(
        f"/api/v1/signature-requests/SR-other/signers/{signer_id}/status",
        json={"status": "viewed"},
        headers=headers_for(bob),
    )

    assert viewed.status_code == 200
    assert viewed.json()["status"] == "viewed"
    assert wrong_request.status_code == 404


def test_signer_status_route_refuses_strangers(client, alice, mallory):
    created = create_via_api(client, alice, "bob@example.com")
    detail = client.get(f"/api/v1/signature-requests/{created['request_id']}", headers=headers_for(alice)).json()
    signer_id = detail["signers"][0]["signer_id"]

    response = client.post(
        f"/api/v1/signature-requests/{created['request_id']}/signers/{signer_id}/status",
        json={"status": "cancelled"},
        headers=headers_for(mallory),
    )

    after = client.get(f"/api/v1/signature-requests/{created['request_id']}", headers=headers_for(alice)).json()
    assert response.status_code == 403
    assert after["signers"][0]["status"] == "sent"


def test_update_delete_and_audit(client, alice):
    created = create_via_api(client, alice, "bob@example.com")
    path = f"/api/v1/signature-requests/{created['request_id']}"

    updated = client.patch(path, json={"title": "Renamed"}, headers=headers_for(alice))
    audit = client.get(f"{path}/audit", headers=headers_for(alice))
    deleted = client.delete(path, headers=headers_for(alice))
    after = client.get(path, headers=headers_for(alice))

    assert updated.json()["title"] == "Renamed"
    assert {e["action"] for e in audit.json()} == {"created", "updated"}
    assert deleted.status_code == 200
    assert after.status_code == 404


def test_remind_twice_is_429(client, alice):
    created = create_via_api(client, alice, "bob@example.com")
    path = f"/api/v1/signature-requests/{created['request_id']}/remind"

    assert client.post(path, headers=headers_for(alice)).status_code == 200
    assert client.post(path, headers=headers_for(alice)).status_code == 429


def test_bulk_route(client, alice):
    first = create_via_api(client, alice, "bob@example.com")

    response = client.post(
        "/api/v1/signature-requests/bulk",
        json={"operation": "cancel", "request_ids": [first["request_id"], "SR-missing"]},
        headers=headers_for(alice),
    )

    body = response.json()
    assert response.status_code == 200
    assert (body["total"], body["successful"], body["failed"]) == (2, 1, 1)
    assert body["errors"][0]["code"] == "NOT_FOUND"


def test_expiration_routes(client, alice, clock):
    created = create_via_api(client, alice, "bob@example.com", expires_in_days=3)

    upcoming = client.get("/api/v1/expirations/upcoming", params={"days_ahead": 5}, headers=headers_for(alice))
    extended = client.post(
        f"/api/v1/expirations/{created['request_id']}/extend", json={"days": 10}, headers=headers_for(alice)
    )
    clock.advance(days=14)
    sweep = client.post("/api/v1/expirations/check", headers=headers_for(alice))

    assert [r["request_id"] for r in upcoming.json()] == [created["request_id"]]
    assert extended.json()["expires_at"].startswith("2024-03-14T09:00:00")
    assert sweep.json()["expired"] == 1


def test_field_routes(client, alice):
    fields = {"fields": [{"assigned_to": "bob@example.com", "required": True,
                          "position": {"x": 5, "y": 5, "width": 30, "height": 6}}]}

    validated = client.post("/api/v1/fields/validate", json=fields, headers=headers_for(alice))
    saved = client.put("/api/v1/fields/doc-7", json=fields, headers=headers_for(alice))
    fetched = client.get("/api/v1/fields/doc-7", headers=headers_for(alice))

    assert validated.json()["valid"] is True
    assert saved.json()["owner_id"] == alice.user_id
    assert fetched.json()["fields"][0]["assigned_to"] == "bob@example.com"


def test_root_route_lists_service(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["service"] == "Signature Workflow Service"

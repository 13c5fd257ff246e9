#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
    tests.test_api
    ~~~~~~~~~~~~~~

    HTTP surface: owner scoping, error mapping and multipart uploads.

    :copyright: (c) 2025 by AUTHORS.
    :license: see LICENSE for more details.
"""

import json
import pytest
from fastapi.testclient import TestClient

from stora.app import app
from stora.core.auth import create_session_token
from stora.core.blobs import get_blob_store
from stora.core.db import get_db

OWNER = 1
OTHER_OWNER = 2
ITEM = {
    "name": "Proyektor",
    "code": "HMSI/ELK/001",
    "quantity": 3,
    "category": "Elektronik",
    "condition": "Baik",
}


def auth_header(owner_id=OWNER):
    return {"Authorization": f"Bearer {create_session_token(owner_id)}"}


@pytest.fixture
def client(db_session, blobs):
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_blob_store] = lambda: blobs
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def create_item(client, **overrides):
    response = client.post("/v1/api/items", json={**ITEM, **overrides}, headers=auth_header())
    assert response.status_code == 201, response.text
    return response.json()


def test_requires_bearer_token(client):
    response = client.get("/v1/api/items")
    assert response.status_code == 401
    assert response.json()["error"] == "unauthenticated"

    response = client.get("/v1/api/items", headers={"Authorization": "Bearer forged"})
    assert response.status_code == 401


def test_item_crud(client):
    item = create_item(client)
    assert item["available_quantity"] == 3
    assert item["condition"] == "Baik"

    response = client.put(f"/v1/api/items/{item['id']}", json={"location": "Gudang"},
                          headers=auth_header())
    assert response.status_code == 200
    assert response.json()["location"] == "Gudang"
    assert response.json()["name"] == "Proyektor"

    listing = client.get("/v1/api/items", headers=auth_header()).json()
    assert listing["pagination"]["total"] == 1
    assert listing["items"][0]["code"] == "HMSI/ELK/001"

    stats = client.get("/v1/api/items/stats", headers=auth_header()).json()
    assert stats["total_items"] == 1

    response = client.delete(f"/v1/api/items/{item['id']}", headers=auth_header())
    assert response.status_code == 200
    assert client.get(f"/v1/api/items/{item['id']}", headers=auth_header()).status_code == 404


def test_error_bodies(client):
    item = create_item(client)

    response = client.post("/v1/api/items", json={**ITEM, "code": "hmsi-elk-1"}, headers=auth_header())
    assert response.status_code == 409
    assert response.json() == {
        "error": "duplicate_code",
        "message": "Asset code 'hmsi-elk-1' is already registered.",
        "details": {"code": "hmsi-elk-1", "existing_id": item["id"]},
    }

    response = client.post("/v1/api/items", json={"name": "Tenda"}, headers=auth_header())
    assert response.status_code == 400
    assert response.json()["details"]["fields"] == ["code", "quantity", "category", "condition"]

    response = client.get(f"/v1/api/items/{item['id']}", headers=auth_header(OTHER_OWNER))
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_loan_lifecycle(client):
    item = create_item(client)
    loan = {
        "borrower_name": "Budi",
        "borrower_phone": "08123456789",
        "loan_date": "2025-03-10",
        "due_date": "2025-03-12",
        "lines": [{"item_id": item["id"], "quantity": 2}],
    }

    response = client.post("/v1/api/loans", json=loan, headers=auth_header())
    assert response.status_code == 201, response.text
    created = response.json()
    assert created["status"] == "Borrowed"
    assert created["lines"][0]["item_code"] == "HMSI/ELK/001"

    response = client.post("/v1/api/loans", json=loan, headers=auth_header())
    assert response.status_code == 409
    assert response.json()["details"]["lines"][0]["available"] == 1

    quantity = client.get(f"/v1/api/items/{item['id']}/quantity", headers=auth_header()).json()
    assert quantity == {"total_quantity": 3, "borrowed_quantity": 2, "available_quantity": 1}

    response = client.post(f"/v1/api/loans/{created['id']}/return",
                           json={"returned_at": "2025-03-13T08:00:00"}, headers=auth_header())
    assert response.status_code == 200
    assert response.json()["return_status"] == "Late"

    response = client.post(f"/v1/api/loans/{created['id']}/return", headers=auth_header())
    assert response.status_code == 400

    quantity = client.get(f"/v1/api/items/{item['id']}/quantity", headers=auth_header()).json()
    assert quantity["available_quantity"] == 3

    stats = client.get("/v1/api/loans/stats", headers=auth_header()).json()
    assert stats["by_status"] == {"Returned": 1}

    assert client.delete(f"/v1/api/loans/{created['id']}", headers=auth_header()).status_code == 200
    assert client.get(f"/v1/api/loans/{created['id']}", headers=auth_header()).status_code == 404


def test_loan_with_photos(client, blobs):
    first = create_item(client)
    second = create_item(client, code="HMSI/ELK/002")
    data = {
        "borrower_name": "Sari",
        "borrower_phone": "0812",
        "due_date": "2099-01-01",
        "lines": json.dumps([
            {"item_id": first["id"], "quantity": 1},
            {"item_id": second["id"], "quantity": 1},
        ]),
        "photo_items": json.dumps([second["id"]]),
    }
    files = [("photos", ("second.jpg", b"\xff\xd8\xff", "image/jpeg"))]

    response = client.post("/v1/api/loans/with-photos", data=data, files=files, headers=auth_header())

    assert response.status_code == 201, response.text
    lines = {line["item_id"]: line for line in response.json()["lines"]}
    assert lines[first["id"]]["photo"] is None
    assert lines[second["id"]]["photo"]["loan_path"].startswith("/uploads/owner-1/loan-")
    assert blobs.put.call_count == 1

    loan_id = response.json()["id"]
    files = [("photos", ("back.png", b"\x89PNG", "image/png"))]
    response = client.patch(f"/v1/api/loans/{loan_id}/return-photos",
                            data={"photo_items": json.dumps([second["id"]])},
                            files=files, headers=auth_header())
    assert response.status_code == 200, response.text
    photo = {line["item_id"]: line["photo"] for line in response.json()["lines"]}[second["id"]]
    assert photo["return_path"].startswith(f"/uploads/owner-1/return-{loan_id}-")
    assert photo["loan_path"].startswith("/uploads/owner-1/loan-")


def test_rejected_loan_cleans_up_uploads(client, blobs):
    item = create_item(client)
    data = {
        "borrower_name": "Sari",
        "borrower_phone": "0812",
        "due_date": "2099-01-01",
        "lines": json.dumps([{"item_id": item["id"], "quantity": 1}]),
    }
    files = [
        ("photos", ("a.jpg", b"a", "image/jpeg")),
        ("photos", ("b.jpg", b"b", "image/jpeg")),
    ]

    response = client.post("/v1/api/loans/with-photos", data=data, files=files, headers=auth_header())

    assert response.status_code == 400
    assert response.json()["details"]["fields"] == ["photos"]
    assert blobs.remove.call_count == 2


def test_json_photo_paths_must_belong_to_the_caller(client, blobs):
    response = client.post("/v1/api/items", json={**ITEM, "code": "V-1", "photos": ["/uploads/owner-2/victim.jpg"]},
                           headers=auth_header(OTHER_OWNER))
    assert response.status_code == 201, response.text
    victim_id = response.json()["id"]

    response = client.post("/v1/api/items", json={**ITEM, "photos": ["/uploads/owner-2/victim.jpg"]},
                           headers=auth_header())
    assert response.status_code == 400
    assert response.json()["details"]["fields"] == ["photos"]
    assert client.get("/v1/api/items", headers=auth_header()).json()["pagination"]["total"] == 0

    blobs.remove.assert_not_called()
    response = client.get(f"/v1/api/items/{victim_id}", headers=auth_header(OTHER_OWNER))
    assert [p["asset_path"] for p in response.json()["photos"]] == ["/uploads/owner-2/victim.jpg"]


def test_non_image_upload_is_rejected(client, blobs):
    item = create_item(client)
    files = [("photos", ("notes.txt", b"hello", "text/plain"))]
    response = client.post(f"/v1/api/items/{item['id']}/photos", files=files, headers=auth_header())
    assert response.status_code == 400
    blobs.put.assert_not_called()


def test_due_loans_and_snapshot(client):
    item = create_item(client)
    client.post("/v1/api/loans", json={
        "borrower_name": "Budi",
        "borrower_phone": "0812",
        "loan_date": "2025-03-10",
        "due_date": "2025-03-11",
        "lines": [{"item_id": item["id"], "quantity": 1}],
    }, headers=auth_header())

    due = client.get("/v1/api/loans/due", headers=auth_header()).json()
    assert [loan["borrower_name"] for loan in due] == ["Budi"]

    snapshot = client.get("/v1/api/sync/snapshot", headers=auth_header()).json()
    assert [i["id"] for i in snapshot["items"]] == [item["id"]]
    assert snapshot["items"][0]["borrowed_quantity"] == 1
    assert len(snapshot["loans"]) == 1

    empty = client.get("/v1/api/sync/snapshot", headers=auth_header(OTHER_OWNER)).json()
    assert empty["items"] == [] and empty["loans"] == []

"""API integration tests."""

from __future__ import annotations

from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from agent_kb.app import app

ORG = {"X-Organization-Id": "org-1"}
OTHER_ORG = {"X-Organization-Id": "org-2"}

POLICY = b"Refunds are issued within thirty days.\n\nThe refund policy covers every order placed online."


@pytest.fixture
def client() -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


def _upload(client: TestClient, files: list[tuple[str, bytes, str]], agents: str = "agent-1", **form: str):
    return client.post(
        "/knowledge/documents",
        headers=ORG,
        files=[("files", item) for item in files],
        data={"agent_ids": agents, **form},
    )


def test_health(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


def test_upload_search_and_delete_flow(client: TestClient) -> None:
    upload_resp = _upload(client, [("policy.txt", POLICY, "text/plain")], document_id="doc-policy")
    assert upload_resp.status_code == 200
    [result] = upload_resp.json()["results"]
    assert result["success"] is True
    assert result["document_id"] == "doc-policy"
    assert result["chunks"] == 1

    documents = client.get("/knowledge/documents", headers=ORG).json()
    assert [(doc["id"], doc["name"], doc["agentIds"], doc["status"]) for doc in documents] == [
        ("doc-policy", "policy.txt", ["agent-1"], "complete")
    ]

    search_resp = client.post("/knowledge/search", headers=ORG, json={"query": "refund policy", "agent_id": "agent-1"})
    assert search_resp.status_code == 200
    hits = search_resp.json()["results"]
    assert hits and hits[0]["documentName"] == "policy.txt"
    assert hits[0]["documentId"] == "doc-policy"
    assert hits[0]["chunkIndex"] == 0

    hidden = client.post("/knowledge/search", headers=ORG, json={"query": "refund policy", "agent_id": "agent-9"})
    assert hidden.json()["results"] == []

    content = client.get("/knowledge/documents/doc-policy/content", headers=ORG)
    assert content.status_code == 200
    assert "refund policy" in content.json()["content"]

    delete_resp = client.delete("/knowledge/documents/doc-policy", headers=ORG)
    assert delete_resp.json() == {"status": "ok", "deleted": 1}
    again = client.delete("/knowledge/documents/doc-policy", headers=ORG)
    assert again.json() == {"status": "noop", "deleted": 0}
    assert client.get("/knowledge/documents", headers=ORG).json() == []


def test_other_organization_sees_nothing(client: TestClient) -> None:
    _upload(client, [("policy.txt", POLICY, "text/plain")], document_id="doc-policy")

    assert client.get("/knowledge/documents", headers=OTHER_ORG).json() == []
    resp = client.get("/knowledge/documents/doc-policy/content", headers=OTHER_ORG)
    assert resp.status_code == 404
    search = client.post("/knowledge/search", headers=OTHER_ORG, json={"query": "refund", "agent_id": "agent-1"})
    assert search.json()["results"] == []


def test_mixed_upload_reports_per_file_results(client: TestClient) -> None:
    resp = _upload(
        client,
        [
            ("policy.txt", POLICY, "text/plain"),
            ("archive.zip", b"PK\x03\x04", "application/zip"),
            ("blank.txt", b"   ", "text/plain"),
        ],
    )
    assert resp.status_code == 200
    results = {item["filename"]: item for item in resp.json()["results"]}
    assert results["policy.txt"]["success"] is True
    assert results["archive.zip"]["success"] is False
    assert "Unsupported file type" in results["archive.zip"]["error"]
    assert results["blank.txt"]["success"] is False
    assert len(client.get("/knowledge/documents", headers=ORG).json()) == 1


def test_document_id_rejected_for_multiple_files(client: TestClient) -> None:
    resp = _upload(
        client,
        [("a.txt", b"first", "text/plain"), ("b.txt", b"second", "text/plain")],
        document_id="doc-1",
    )
    assert resp.status_code == 400


def test_missing_organization_header(client: TestClient) -> None:
    assert client.get("/knowledge/documents").status_code == 400
    resp = client.post("/knowledge/search", json={"query": "refund", "agent_id": "agent-1"})
    assert resp.status_code == 400


def test_text_document_and_duplicate(client: TestClient) -> None:
    payload = {"document_id": "doc-text", "name": "notes", "content": POLICY.decode(), "agent_ids": ["agent-1"]}
    resp = client.post("/knowledge/documents/text", headers=ORG, json=payload)
    assert resp.status_code == 200
    assert resp.json()["chunks"] == 1

    duplicate = client.post("/knowledge/documents/text", headers=ORG, json=payload)
    assert duplicate.status_code == 409

    blank = {**payload, "document_id": "doc-empty", "content": " "}
    empty = client.post("/knowledge/documents/text", headers=ORG, json=blank)
    assert empty.status_code == 422


def test_stats_and_repair(client: TestClient) -> None:
    _upload(client, [("policy.txt", POLICY, "text/plain")], agents="agent-1,agent-2", document_id="doc-policy")

    stats = client.get("/knowledge/stats", headers=ORG).json()
    assert stats["total_documents"] == 1
    assert stats["documents_per_agent"] == {"agent-1": 1, "agent-2": 1}

    repair = client.post("/knowledge/documents/doc-policy/repair", headers=ORG)
    assert repair.json() == {"status": "noop", "deleted": 0}


def test_service_endpoints(client: TestClient) -> None:
    assert ".pdf" in client.get("/knowledge/supported-types").json()["suffixes"]

    status = client.get("/status").json()["status"]
    assert status["store_open"] is True
    assert status["embedding_configured"] is True

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "agkb_requests_total" in metrics.text

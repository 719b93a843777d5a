from __future__ import annotations

from fastapi.testclient import TestClient

VALID = b'{"prompt": "a", "completion": "b"}\n{"prompt": "c", "completion": "d"}\n'


def _jsonl(content: bytes, filename: str = "train.jsonl") -> dict[str, tuple[str, bytes, str]]:
    return {"file": (filename, content, "application/jsonl")}


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_validate_reports_line_errors(client: TestClient, scratch_files) -> None:
    body = b'{"prompt":"a","completion":"b"}\n{"prompt":123}'
    response = client.post("/api/validate-jsonl", files=_jsonl(body))

    assert response.status_code == 400
    payload = response.json()
    assert payload["error"] == "Invalid JSONL format"
    assert payload["totalLines"] == 2
    assert "Line 2: Missing or invalid 'prompt' field" in payload["details"]
    assert all(message.startswith("Line 2:") for message in payload["details"])
    assert scratch_files() == []


def test_validate_accepts_valid_file(client: TestClient, scratch_files) -> None:
    response = client.post("/api/validate-jsonl", files=_jsonl(VALID))

    assert response.status_code == 200
    assert response.json() == {"message": "File validation successful", "totalLines": 2}
    assert scratch_files() == []


def test_validate_requires_a_jsonl_file(client: TestClient) -> None:
    missing = client.post("/api/validate-jsonl")
    assert missing.status_code == 400
    assert missing.json() == {"error": "No file uploaded"}

    wrong_type = client.post("/api/validate-jsonl", files=_jsonl(VALID, "train.csv"))
    assert wrong_type.status_code == 400
    assert wrong_type.json()["error"] == "Only .jsonl files are allowed for fine-tuning"


def test_upload_defaults_purpose_to_fine_tune(client: TestClient, gateway, scratch_files) -> None:
    response = client.post("/api/upload", files=_jsonl(VALID))

    assert response.status_code == 200
    payload = response.json()
    assert payload["message"] == "File uploaded successfully"
    assert payload["file"] == {
        "id": "file-abc123",
        "purpose": "fine-tune",
        "filename": "train.jsonl",
        "bytes": len(VALID),
        "created_at": 1_700_000_000,
        "status": "processed",
        "totalLines": 2,
    }
    name, call = gateway.calls[-1]
    assert name == "create_file"
    assert call["content"] == VALID
    assert scratch_files() == []


def test_upload_forwards_explicit_purpose(client: TestClient, gateway) -> None:
    response = client.post("/api/upload", files=_jsonl(VALID), data={"purpose": "batch"})

    assert response.status_code == 200
    assert response.json()["file"]["purpose"] == "batch"
    assert gateway.calls[-1][1]["purpose"] == "batch"


def test_upload_rejects_invalid_file_before_upstream(
    client: TestClient, gateway, scratch_files
) -> None:
    response = client.post("/api/upload", files=_jsonl(b"{}\n"))

    assert response.status_code == 400
    assert response.json() == {
        "error": "Invalid JSONL format",
        "details": [
            "Line 1: Missing or invalid 'prompt' field",
            "Line 1: Missing or invalid 'completion' field",
        ],
    }
    assert gateway.calls == []
    assert scratch_files() == []


def test_upload_passes_upstream_message_through(
    client: TestClient, gateway, scratch_files
) -> None:
    gateway.failures["create_file"] = "File is too large for purpose"
    response = client.post("/api/upload", files=_jsonl(VALID))

    assert response.status_code == 500
    assert response.json() == {
        "error": "Failed to upload file",
        "message": "File is too large for purpose",
    }
    assert scratch_files() == []


def test_upload_size_cap(client: TestClient, settings, scratch_files) -> None:
    settings.max_upload_bytes = 8
    response = client.post("/api/upload", files=_jsonl(VALID))

    assert response.status_code == 400
    assert response.json()["error"] == "File too large"
    assert scratch_files() == []


def test_list_and_delete_files(client: TestClient, gateway) -> None:
    listed = client.get("/api/files")
    assert listed.status_code == 200
    assert listed.json()[0]["id"] == "file-abc123"

    deleted = client.delete("/api/files/file-abc123")
    assert deleted.status_code == 200
    assert deleted.json() == {
        "message": "File deleted successfully",
        "deleted": True,
        "id": "file-abc123",
    }
    assert gateway.calls[-1] == ("delete_file", {"file_id": "file-abc123"})


def test_file_listing_failure_is_500(client: TestClient, gateway) -> None:
    gateway.failures["list_files"] = "service unavailable"
    response = client.get("/api/files")
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to list files", "message": "service unavailable"}

    gateway.failures["delete_file"] = "No such File object"
    response = client.delete("/api/files/file-missing")
    assert response.status_code == 500
    assert response.json()["message"] == "No such File object"


def test_preview_endpoint_filters_blank_lines(client: TestClient, scratch_files) -> None:
    body = b'{"prompt": "a", "completion": "b"}\n\nnot json\n'
    response = client.post("/api/preview-jsonl", files=_jsonl(body), data={"limit": "5"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["totalLines"] == 2
    assert [row["prompt"] for row in payload["rows"]] == ["a", "Invalid JSON"]
    assert scratch_files() == []


def test_export_endpoint_returns_attachment(client: TestClient) -> None:
    response = client.post("/api/export", files=_jsonl(VALID), data={"format": "csv"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert 'filename="edited_train.csv"' in response.headers["content-disposition"]
    assert response.text.splitlines() == ["prompt,completion", "a,b", "c,d"]


def test_export_rejects_unknown_format(client: TestClient) -> None:
    response = client.post("/api/export", files=_jsonl(VALID), data={"format": "pdf"})
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request"


def test_excel_export_accepts_control_characters(client: TestClient) -> None:
    body = b'{"prompt": "bell\\u0007here", "completion": "ok"}\n'
    response = client.post("/api/export", files=_jsonl(body), data={"format": "excel"})

    assert response.status_code == 200
    assert 'filename="edited_train.xlsx"' in response.headers["content-disposition"]
    assert response.content[:2] == b"PK"

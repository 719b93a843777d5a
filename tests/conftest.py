from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from studio_api.app.config import Settings
from studio_api.app.errors import UpstreamError
from studio_api.app.models import GenerationOptions, ImageGenerationOptions
from studio_api.main import create_app


class FakeGateway:
    """Test-only gateway double that records calls instead of reaching OpenAI."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.failures: dict[str, str] = {}
        self.fragments: list[str] = ["Hel", "lo"]
        # Raise mid-stream after this many fragments when set.
        self.stream_fail_after: int | None = None
        self.stream_closed = False

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.failures:
            raise UpstreamError(self.failures[operation])

    def create_file(self, path: Path, *, filename: str, purpose: str) -> dict[str, Any]:
        self.calls.append(
            (
                "create_file",
                {
                    "filename": filename,
                    "purpose": purpose,
                    "exists": path.exists(),
                    "content": path.read_bytes(),
                },
            )
        )
        self._maybe_fail("create_file")
        return {
            "id": "file-abc123",
            "object": "file",
            "purpose": purpose,
            "filename": filename,
            "bytes": path.stat().st_size,
            "created_at": 1_700_000_000,
            "status": "processed",
        }

    def list_files(self) -> list[dict[str, Any]]:
        self.calls.append(("list_files", {}))
        self._maybe_fail("list_files")
        return [{"id": "file-abc123", "filename": "train.jsonl", "purpose": "fine-tune"}]

    def delete_file(self, file_id: str) -> dict[str, Any]:
        self.calls.append(("delete_file", {"file_id": file_id}))
        self._maybe_fail("delete_file")
        return {"id": file_id, "object": "file", "deleted": True}

    def complete(self, options: GenerationOptions, *, model: str) -> dict[str, Any]:
        self.calls.append(("complete", {"options": options, "model": model}))
        self._maybe_fail("complete")
        return {"result": "".join(self.fragments), "usage": {"total_tokens": 7}}

    def open_completion_stream(self, options: GenerationOptions, *, model: str) -> Iterator[str]:
        self.calls.append(("open_completion_stream", {"options": options, "model": model}))
        self._maybe_fail("open_completion_stream")
        return self._stream()

    def _stream(self) -> Iterator[str]:
        try:
            for index, fragment in enumerate(self.fragments):
                if self.stream_fail_after is not None and index >= self.stream_fail_after:
                    raise UpstreamError("stream dropped")
                yield fragment
            if self.stream_fail_after is not None and self.stream_fail_after >= len(self.fragments):
                raise UpstreamError("stream dropped")
        finally:
            self.stream_closed = True

    def generate_image(self, options: ImageGenerationOptions) -> dict[str, Any]:
        self.calls.append(("generate_image", {"options": options}))
        self._maybe_fail("generate_image")
        return {"created": 1_700_000_001, "data": [{"url": "https://img.example/1.png"}]}

    def edit_image(
        self, image_path: Path, *, prompt: str, mask_path: Path | None = None
    ) -> dict[str, Any]:
        self.calls.append(
            (
                "edit_image",
                {
                    "prompt": prompt,
                    "image_exists": image_path.exists(),
                    "mask_exists": mask_path.exists() if mask_path else None,
                },
            )
        )
        self._maybe_fail("edit_image")
        return {"created": 1_700_000_002, "data": [{"url": "https://img.example/edit.png"}]}

    def create_variations(self, image_path: Path) -> dict[str, Any]:
        self.calls.append(("create_variations", {"image_exists": image_path.exists()}))
        self._maybe_fail("create_variations")
        return {
            "created": 1_700_000_003,
            "data": [{"url": f"https://img.example/var{i}.png"} for i in range(4)],
        }


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        data_dir=tmp_path / "data",
        uploads_dir=tmp_path / "uploads",
        openai_api_key="",
        default_text_model="gpt-4o-mini",
    )


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def client(settings: Settings, gateway: FakeGateway) -> Iterator[TestClient]:
    app = create_app(settings_override=settings, gateway=gateway)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def scratch_files(settings: Settings):
    """Callable listing whatever is left in the uploads scratch directory."""

    def _list() -> list[Path]:
        if not settings.uploads_dir.exists():
            return []
        return sorted(settings.uploads_dir.iterdir())

    return _list

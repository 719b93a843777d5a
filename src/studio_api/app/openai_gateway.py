from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any, Protocol

import httpx
from openai import OpenAI, OpenAIError

from .config import Settings
from .errors import UpstreamError
from .models import GenerationOptions, ImageGenerationOptions

logger = logging.getLogger(__name__)

EDIT_IMAGE_SIZE = "1024x1024"
VARIATION_COUNT = 4


class UpstreamGateway(Protocol):
    """Every call the routes make against the generative API."""

    def create_file(self, path: Path, *, filename: str, purpose: str) -> dict[str, Any]: ...

    def list_files(self) -> list[dict[str, Any]]: ...

    def delete_file(self, file_id: str) -> dict[str, Any]: ...

    def complete(self, options: GenerationOptions, *, model: str) -> dict[str, Any]: ...

    def open_completion_stream(
        self, options: GenerationOptions, *, model: str
    ) -> Iterator[str]: ...

    def generate_image(self, options: ImageGenerationOptions) -> dict[str, Any]: ...

    def edit_image(
        self, image_path: Path, *, prompt: str, mask_path: Path | None = None
    ) -> dict[str, Any]: ...

    def create_variations(self, image_path: Path) -> dict[str, Any]: ...


class OpenAIGateway:
    """Thin wrapper over the official OpenAI client.

    SDK exceptions are translated to ``UpstreamError`` here so routes never
    depend on SDK types. The client is built without retries.
    """

    def __init__(self, client: Any | None) -> None:
        self._client = client

    def create_file(self, path: Path, *, filename: str, purpose: str) -> dict[str, Any]:
        client = self._require_client()
        with path.open("rb") as handle:
            created = self._call(
                "files.create",
                lambda: client.files.create(file=(filename, handle), purpose=purpose),
            )
        return _to_dict(created)

    def list_files(self) -> list[dict[str, Any]]:
        client = self._require_client()
        page = self._call("files.list", client.files.list)
        return [_to_dict(item) for item in page.data]

    def delete_file(self, file_id: str) -> dict[str, Any]:
        client = self._require_client()
        deleted = self._call("files.delete", lambda: client.files.delete(file_id))
        return _to_dict(deleted)

    def complete(self, options: GenerationOptions, *, model: str) -> dict[str, Any]:
        client = self._require_client()
        completion = self._call(
            "chat.completions.create",
            lambda: client.chat.completions.create(**_chat_payload(options, model)),
        )
        usage = getattr(completion, "usage", None)
        return {
            "result": completion.choices[0].message.content,
            "usage": _to_dict(usage) if usage is not None else None,
        }

    def open_completion_stream(self, options: GenerationOptions, *, model: str) -> Iterator[str]:
        """Open the upstream stream now and return an iterator over its text fragments."""
        client = self._require_client()
        stream = self._call(
            "chat.completions.create(stream)",
            lambda: client.chat.completions.create(**_chat_payload(options, model), stream=True),
        )
        return self._fragments(stream, model=model)

    def generate_image(self, options: ImageGenerationOptions) -> dict[str, Any]:
        client = self._require_client()
        response = self._call(
            "images.generate",
            lambda: client.images.generate(
                model=options.model,
                prompt=options.prompt,
                n=options.n,
                size=options.size,
                quality=options.quality,
                response_format="url",
            ),
        )
        return _to_dict(response)

    def edit_image(
        self, image_path: Path, *, prompt: str, mask_path: Path | None = None
    ) -> dict[str, Any]:
        client = self._require_client()
        with image_path.open("rb") as image:
            kwargs: dict[str, Any] = {
                "image": image,
                "prompt": prompt,
                "n": 1,
                "size": EDIT_IMAGE_SIZE,
                "response_format": "url",
            }
            if mask_path is None:
                response = self._call("images.edit", lambda: client.images.edit(**kwargs))
            else:
                with mask_path.open("rb") as mask:
                    kwargs["mask"] = mask
                    response = self._call("images.edit", lambda: client.images.edit(**kwargs))
        return _to_dict(response)

    def create_variations(self, image_path: Path) -> dict[str, Any]:
        client = self._require_client()
        with image_path.open("rb") as image:
            response = self._call(
                "images.create_variation",
                lambda: client.images.create_variation(
                    image=image,
                    n=VARIATION_COUNT,
                    size=EDIT_IMAGE_SIZE,
                    response_format="url",
                ),
            )
        return _to_dict(response)

    def _fragments(self, stream: Any, *, model: str) -> Iterator[str]:
        try:
            for chunk in stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content or ""
                if content:
                    yield content
        except (OpenAIError, httpx.HTTPError) as exc:
            # The SDK stream iterator lets raw transport errors through.
            logger.warning("OpenAI stream failed model=%s reason=%s", model, exc)
            raise UpstreamError(str(exc)) from exc
        finally:
            # Runs on completion, failure, and when the consumer closes the iterator.
            stream.close()

    def _require_client(self) -> Any:
        if self._client is None:
            raise UpstreamError("OPENAI_API_KEY is not configured")
        return self._client

    @staticmethod
    def _call(operation: str, fn: Any) -> Any:
        try:
            return fn()
        except OpenAIError as exc:
            logger.warning("OpenAI request failed operation=%s reason=%s", operation, exc)
            raise UpstreamError(str(exc)) from exc


def build_gateway_from_settings(settings: Settings) -> OpenAIGateway:
    api_key = settings.resolved_openai_api_key()
    if not api_key:
        logger.warning("OpenAI gateway unconfigured: OPENAI_API_KEY is empty")
        return OpenAIGateway(client=None)
    client = OpenAI(
        api_key=api_key,
        base_url=settings.openai_base_url,
        timeout=settings.openai_timeout_s,
        max_retries=0,
    )
    return OpenAIGateway(client=client)


def _chat_payload(options: GenerationOptions, model: str) -> dict[str, Any]:
    return {
        "model": model,
        "messages": [{"role": "user", "content": options.prompt}],
        "temperature": options.temperature,
        "presence_penalty": options.presence_penalty,
        "max_tokens": options.max_tokens,
    }


def _to_dict(value: Any) -> dict[str, Any]:
    """Convert an SDK response model to the JSON object the API returned."""
    if isinstance(value, dict):
        return value
    return value.model_dump(mode="json", exclude_unset=True)

"""FastAPI application wiring for the generative-AI studio backend.

Beginner terms used in this file:
- FastAPI app: the main web application object.
- Route/path operation: a function exposed over HTTP (for example, GET /api/health).
- UploadFile/Form: multipart form parts (files and plain fields).
- app.state: a place to store shared runtime objects (settings, gateway, logs).
"""

from __future__ import annotations

import logging
from contextlib import ExitStack
from typing import Any

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse

from .app.config import Settings, configure_logging, get_settings
from .app.dataset_tools import DEFAULT_PREVIEW_LINES, export_dataset, preview_dataset
from .app.errors import (
    InternalError,
    InvalidFormatError,
    MissingInputError,
    StudioError,
    UpstreamError,
)
from .app.event_log import CategoryLogs, new_entry
from .app.models import (
    DeleteFileResponse,
    ExportFormat,
    GenerateResponse,
    GenerationOptions,
    ImageGenerationOptions,
    LogCategory,
    PreviewResponse,
    PromptSuggestions,
    UploadResponse,
    ValidateResponse,
)
from .app.openai_gateway import UpstreamGateway, build_gateway_from_settings
from .app.streaming import open_relay
from .app.suggestions import prompt_suggestions
from .app.uploads import (
    require_image,
    require_jsonl,
    scratch_upload,
    store_upload,
    upload_training_file,
)
from .app.validator import validate_jsonl_file

logger = logging.getLogger(__name__)


def create_app(
    *,
    settings_override: Settings | None = None,
    gateway: UpstreamGateway | None = None,
    logs: CategoryLogs | None = None,
) -> FastAPI:
    """Application factory.

    Tests pass a fake gateway and tmp-path settings; production builds both
    from the environment.
    """
    settings = settings_override or get_settings()
    configure_logging(settings)

    app = FastAPI(title=settings.app_name, version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Shared objects live in app.state so route handlers can reuse them.
    app.state.settings = settings
    app.state.gateway = gateway or build_gateway_from_settings(settings)
    app.state.logs = logs or CategoryLogs.from_directory(settings.data_dir)
    settings.uploads_dir.mkdir(parents=True, exist_ok=True)

    _register_error_handlers(app)

    def _store(upload: UploadFile, prefix: str = ""):
        return scratch_upload(
            upload,
            settings.uploads_dir,
            max_bytes=settings.max_upload_bytes,
            prefix=prefix,
        )

    @app.get("/api/health")
    def health() -> dict[str, str]:
        return {"status": "healthy"}

    @app.post("/api/validate-jsonl", response_model=ValidateResponse)
    def validate_file(file: UploadFile | None = File(None)) -> ValidateResponse:
        upload = require_jsonl(file)
        with _store(upload) as scratch:
            try:
                record = validate_jsonl_file(scratch.path)
            except OSError as exc:
                raise InternalError("Validation failed", message=str(exc)) from exc
        if not record.is_valid:
            raise InvalidFormatError(record.errors, total_lines=record.total_lines)
        return ValidateResponse(
            message="File validation successful", total_lines=record.total_lines
        )

    @app.post("/api/upload", response_model=UploadResponse)
    def upload_file(
        file: UploadFile | None = File(None),
        purpose: str | None = Form(None),
    ) -> UploadResponse:
        upload = require_jsonl(file)
        scratch = store_upload(
            upload, settings.uploads_dir, max_bytes=settings.max_upload_bytes
        )
        try:
            info = upload_training_file(scratch, app.state.gateway, purpose=purpose)
        except UpstreamError as exc:
            raise exc.labelled("Failed to upload file") from exc
        return UploadResponse(message="File uploaded successfully", file=info)

    @app.get("/api/files")
    def list_files() -> list[dict[str, Any]]:
        try:
            return app.state.gateway.list_files()
        except UpstreamError as exc:
            raise exc.labelled("Failed to list files") from exc

    @app.delete("/api/files/{file_id}", response_model=DeleteFileResponse)
    def delete_file(file_id: str) -> DeleteFileResponse:
        try:
            deletion = app.state.gateway.delete_file(file_id)
        except UpstreamError as exc:
            raise exc.labelled("Failed to delete file") from exc
        return DeleteFileResponse(
            message="File deleted successfully",
            deleted=bool(deletion.get("deleted")),
            id=deletion.get("id", file_id),
        )

    @app.post("/api/generate/stream")
    def generate_stream(options: GenerationOptions) -> StreamingResponse:
        model = options.model or settings.default_text_model
        logger.info("generate_stream event=start model=%s max_tokens=%d", model, options.max_tokens)
        try:
            relay = open_relay(app.state.gateway, options, model=model)
        except UpstreamError as exc:
            raise exc.labelled("Failed to generate response") from exc
        return StreamingResponse(
            relay.events(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @app.post("/api/generate", response_model=GenerateResponse)
    def generate(options: GenerationOptions) -> GenerateResponse:
        model = options.model or settings.default_text_model
        try:
            completion = app.state.gateway.complete(options, model=model)
        except UpstreamError as exc:
            raise exc.labelled("Failed to generate response") from exc
        return GenerateResponse(**completion)

    @app.post("/api/generate-image")
    def generate_image(options: ImageGenerationOptions) -> dict[str, Any]:
        try:
            response = app.state.gateway.generate_image(options)
        except UpstreamError as exc:
            raise exc.labelled("Failed to generate image", message_key="details") from exc
        entry = new_entry(response, prompt=options.prompt)
        _record(app, "generation", entry, "Failed to generate image")
        return response

    @app.get("/api/images")
    def list_images() -> dict[str, list[dict[str, Any]]]:
        return {"images": _list_log(app, "generation", "Failed to fetch images")}

    @app.post("/api/edit-image")
    def edit_image(
        prompt: str | None = Form(None),
        image: UploadFile | None = File(None),
        mask: UploadFile | None = File(None),
    ) -> dict[str, Any]:
        if not prompt:
            raise MissingInputError("Prompt is required")
        image_upload = require_image(image)
        mask_upload = require_image(mask) if mask is not None and mask.filename else None

        with ExitStack() as stack:
            image_file = stack.enter_context(_store(image_upload, prefix="image"))
            mask_file = (
                stack.enter_context(_store(mask_upload, prefix="mask")) if mask_upload else None
            )
            try:
                response = app.state.gateway.edit_image(
                    image_file.path,
                    prompt=prompt,
                    mask_path=mask_file.path if mask_file else None,
                )
            except UpstreamError as exc:
                raise exc.labelled("Failed to edit image", message_key="details") from exc
            entry = new_entry(
                response,
                prompt=prompt,
                originalImage=image_file.filename,
                mask=mask_file.filename if mask_file else None,
            )
            _record(app, "edit", entry, "Failed to edit image")
        return response

    @app.post("/api/image-variations")
    def image_variations(image: UploadFile | None = File(None)) -> dict[str, Any]:
        image_upload = require_image(image)
        with _store(image_upload, prefix="image") as image_file:
            try:
                response = app.state.gateway.create_variations(image_file.path)
            except UpstreamError as exc:
                raise exc.labelled("Failed to generate variations", message_key="details") from exc
            entry = new_entry(response, originalImage=image_file.filename)
            _record(app, "variation", entry, "Failed to generate variations")
        return response

    @app.get("/api/image-edits")
    def list_image_edits() -> dict[str, list[dict[str, Any]]]:
        return {"edits": _list_log(app, "edit", "Failed to fetch image edits")}

    @app.get("/api/image-variations")
    def list_image_variations() -> dict[str, list[dict[str, Any]]]:
        return {"variations": _list_log(app, "variation", "Failed to fetch variations")}

    @app.get("/api/prompt-suggestions", response_model=PromptSuggestions)
    def suggestions() -> PromptSuggestions:
        return prompt_suggestions()

    @app.post("/api/preview-jsonl", response_model=PreviewResponse)
    def preview_file(
        file: UploadFile | None = File(None),
        limit: int = Form(DEFAULT_PREVIEW_LINES, ge=0),
        query: str | None = Form(None),
    ) -> PreviewResponse:
        upload = require_jsonl(file)
        with _store(upload) as scratch:
            content = scratch.path.read_text(encoding="utf-8", errors="replace")
        return preview_dataset(content, limit=limit, query=query)

    @app.post("/api/export")
    def export_file(
        file: UploadFile | None = File(None),
        export_format: ExportFormat = Form("jsonl", alias="format"),
    ) -> Response:
        upload = require_jsonl(file)
        with _store(upload) as scratch:
            content = scratch.path.read_text(encoding="utf-8", errors="replace")
        exported = export_dataset(content, export_format, source_filename=upload.filename or "")
        return Response(
            content=exported.payload,
            media_type=exported.media_type,
            headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
        )

    return app


def _record(app: FastAPI, category: LogCategory, entry: dict[str, Any], error: str) -> None:
    """Append one entry to a category log, surfacing disk failures as JSON errors."""
    try:
        app.state.logs.get(category).append(entry)
    except OSError as exc:
        logger.exception("event_log event=append_failed category=%s", category)
        raise InternalError(error, details=str(exc)) from exc


def _list_log(app: FastAPI, category: LogCategory, error: str) -> list[dict[str, Any]]:
    try:
        return app.state.logs.get(category).list_all()
    except (OSError, ValueError) as exc:
        logger.warning("event_log event=read_failed category=%s reason=%s", category, exc)
        raise InternalError(error, details=str(exc)) from exc


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StudioError)
    async def studio_error_handler(_request: Request, exc: StudioError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        _request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        if any(tuple(error.get("loc", ()))[-1:] == ("prompt",) for error in errors):
            return JSONResponse(status_code=400, content={"error": "Prompt is required"})
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "details": jsonable_encoder(errors)},
        )

    # Last line of defence for anything a route did not translate.
    @app.exception_handler(Exception)
    async def unhandled_error_handler(_request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled error: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"error": "Something broke!", "message": str(exc)},
        )


# Module-level app for `uvicorn studio_api.main:app`.
app = create_app()

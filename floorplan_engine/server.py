"""HTTP entry point: upload a board PDF, get the merged render PDF back."""

from __future__ import annotations

import logging
import shutil
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from fastapi import FastAPI, File, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from .config import EngineConfig, Settings
from .errors import FloorplanError, InputError
from .job import create_job_dirs, init_job_outputs
from .pipeline import EnginePipeline, RunOptions
from .utils import safe_filename_token

logger = logging.getLogger(__name__)

PipelineFactory = Callable[..., EnginePipeline]

_CHUNK = 1024 * 1024


class _UploadTooLarge(Exception):
    pass


def _new_request_id() -> str:
    return f"{datetime.now(timezone.utc):%Y%m%d%H%M%S}-{uuid.uuid4().hex[:8]}"


def _validation_message(exc: RequestValidationError) -> str:
    problems = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query")]
        if loc == ["pdf"] and err.get("type") == "missing":
            problems.append("No PDF file uploaded")
            continue
        problems.append(f"{'.'.join(loc) or 'request'}: {err.get('msg', 'invalid value')}")
    return "; ".join(problems) or "Invalid request"


def _error(status: int, code: str, message: str, request_id: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": code, "message": message, "requestId": request_id})


async def _save_upload(upload: UploadFile, dest: Path, limit_bytes: int) -> int:
    size = 0
    with open(dest, "wb") as f:
        while chunk := await upload.read(_CHUNK):
            size += len(chunk)
            if size > limit_bytes:
                raise _UploadTooLarge()
            f.write(chunk)
    return size


def create_app(
    settings: Settings | None = None,
    cfg: EngineConfig | None = None,
    pipeline_factory: PipelineFactory | None = None,
) -> FastAPI:
    settings = settings or Settings()
    cfg = cfg or EngineConfig()
    factory = pipeline_factory or (lambda paths, cfg, opts: EnginePipeline(paths, cfg, opts, settings=settings))
    temp_base = Path(settings.floorplan_workspace) / "temp"

    app = FastAPI(title="floorplan_engine", description="Board PDF to interior render PDF", version="0.1.0")

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        request_id = _new_request_id()
        message = _validation_message(exc)
        logger.warning("[%s] rejected %s: %s", request_id, request.url.path, message)
        return _error(400, "invalid_input", message, request_id)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.post("/process")
    async def process(
        pdf: UploadFile = File(...),
        skip_conversion: int = Query(4, alias="skipConversion", ge=0),
        skip: int = Query(0, ge=0),
        concurrency: int = Query(2, ge=1),
        continue_on_error: bool = Query(False, alias="continue"),
        merge: bool = Query(True),
        dpi: int = Query(110, gt=0),
        filename: str | None = Query(None),
        prefix: str = Query("page", min_length=1),
        pad: bool = Query(True),
        keep_intermediates: bool = Query(False, alias="keepIntermediates"),
    ) -> Response:
        request_id = _new_request_id()
        request_dir = temp_base / request_id

        if pdf.content_type != "application/pdf":
            return _error(400, "invalid_input", "Only PDF files are allowed", request_id)

        try:
            request_dir.mkdir(parents=True, exist_ok=True)
            upload_path = request_dir / "upload.pdf"
            try:
                await _save_upload(pdf, upload_path, settings.max_upload_mb * 1024 * 1024)
            except _UploadTooLarge:
                return _error(
                    400, "file_too_large", f"File too large. Maximum size is {settings.max_upload_mb}MB", request_id
                )

            logger.info("[%s] processing %s", request_id, pdf.filename)
            paths = create_job_dirs(request_dir, "job")
            init_job_outputs(paths)
            opts = RunOptions(
                input_path=str(upload_path),
                skip_conversion_pages=skip_conversion,
                skip_pages=skip,
                concurrency=concurrency,
                continue_on_error=continue_on_error,
                merge_output=merge,
                merged_output_path=str(request_dir / "merged-output.pdf"),
                dpi=dpi,
                file_prefix=safe_filename_token(prefix),
                pad_pages=pad,
                keep_intermediates=keep_intermediates,
            )

            try:
                report = await factory(paths, cfg, opts).run(job_id=request_id)
            except InputError as e:
                logger.warning("[%s] invalid input: %s", request_id, e)
                return _error(400, "invalid_input", str(e), request_id)
            except FloorplanError as e:
                logger.error("[%s] processing failed: %s", request_id, e)
                return _error(500, "processing_failed", str(e), request_id)

            merged = Path(report.merged_pdf_path) if report.merged_pdf_path else None
            if merged is None or not merged.exists():
                message = report.merge_error or "Failed to generate merged PDF"
                return _error(500, "processing_failed", message, request_id)

            body = merged.read_bytes()
            out_name = safe_filename_token(Path(filename).stem) + ".pdf" if filename else f"processed-{request_id}.pdf"
            logger.info("[%s] sending %d bytes", request_id, len(body))
            return Response(
                content=body,
                media_type="application/pdf",
                headers={"Content-Disposition": f'attachment; filename="{out_name}"'},
            )
        except Exception as e:
            logger.exception("[%s] unexpected error", request_id)
            return _error(500, "processing_failed", str(e) or type(e).__name__, request_id)
        finally:
            await pdf.close()
            shutil.rmtree(request_dir, ignore_errors=True)
            logger.debug("[%s] removed %s", request_id, request_dir)

    return app

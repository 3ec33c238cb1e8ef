from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from urllib.parse import quote

from fastapi import FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from pydantic import BaseModel

from docraster_backend.config import (
    CONVERTED_DIR,
    LOG_LEVEL,
    PROFILE_DIR,
    PUBLIC_CONVERTED_PREFIX,
    TARGET_FORMAT,
    UPLOADS_DIR,
)
from docraster_backend.models import ConversionRequest, ConversionResult, ErrorCategory
from docraster_backend.pipeline import build_default_pipeline
from docraster_backend.security import is_safe_basename, safe_join


LOGGER = logging.getLogger("docraster.server")

PIPELINE = build_default_pipeline()

STATUS_BY_CATEGORY = {
    ErrorCategory.INPUT_NOT_FOUND: 404,
    ErrorCategory.ENCRYPTED_INPUT: 400,
    ErrorCategory.CONVERSION_FAILED: 500,
    ErrorCategory.NO_OUTPUT_PRODUCED: 500,
    ErrorCategory.INFRASTRUCTURE_ERROR: 500,
    ErrorCategory.TIMEOUT: 504,
}


class ConvertRequest(BaseModel):
    filename: str


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Uploads are written by the upload endpoint; we only make sure the tree exists.
    for directory in (UPLOADS_DIR, CONVERTED_DIR, PROFILE_DIR):
        directory.mkdir(parents=True, exist_ok=True)
    yield


app = FastAPI(lifespan=lifespan)

# The whiteboard client is served from a different origin.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _not_found() -> JSONResponse:
    result = ConversionResult.failed(ErrorCategory.INPUT_NOT_FOUND)
    return JSONResponse({"success": False, "error": result.message}, status_code=404)


def _failure_response(result: ConversionResult) -> JSONResponse:
    body: dict = {"success": False, "error": result.message}
    if result.details:
        body["details"] = result.details
    if result.encrypted:
        body["encrypted"] = True
    return JSONResponse(body, status_code=STATUS_BY_CATEGORY[result.category])


def _resolve_upload(filename: str) -> Path | None:
    name = (filename or "").strip()
    if not is_safe_basename(name):
        return None
    try:
        return safe_join(UPLOADS_DIR, name)
    except ValueError:
        return None


@app.post("/convert")
@app.post("/api/convert-file")
async def convert_file(payload: ConvertRequest, request: Request) -> JSONResponse:
    """Render an uploaded document to a raster for the whiteboard.

    /api/convert-file is the legacy route the existing whiteboard client still posts to.
    """
    source = _resolve_upload(payload.filename)
    if source is None:
        LOGGER.warning("Rejected unsafe filename %r", payload.filename)
        return _not_found()

    # The renderer blocks until it exits; keep it off the event loop.
    result = await run_in_threadpool(
        PIPELINE.convert,
        ConversionRequest(source_path=source, output_format=PIPELINE.target_format),
    )
    if not result.success:
        return _failure_response(result)

    url = f"{request.base_url}{PUBLIC_CONVERTED_PREFIX}/{quote(result.output_file)}"
    return JSONResponse({"success": True, "converted_file": result.output_file, "url": url})


@app.get("/storage/converted/{filename}")
async def get_converted_file(filename: str) -> Response:
    """Serve a converted raster.

    Security:
    - filename must be a basename (no directories)
    - only the configured raster extension
    - safe_join ensures it cannot escape the converted directory
    """
    if not is_safe_basename(filename):
        raise HTTPException(status_code=404, detail="Not found")
    if Path(filename).suffix.lower() != f".{TARGET_FORMAT}":
        raise HTTPException(status_code=404, detail="Not found")
    try:
        path = safe_join(CONVERTED_DIR, filename)
    except ValueError:
        raise HTTPException(status_code=404, detail="Not found")
    if not path.exists() or not path.is_file():
        raise HTTPException(status_code=404, detail="Not found")

    return FileResponse(path, headers={"Cache-Control": "no-store", "X-Content-Type-Options": "nosniff"})


if __name__ == "__main__":
    # Convenience: python server.py
    import uvicorn

    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    port = int(os.environ.get("PORT", "8010"))
    uvicorn.run("server:app", host="127.0.0.1", port=port, reload=False)

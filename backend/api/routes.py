"""REST API routes for LocalBrowser."""

import logging
from pathlib import PurePosixPath

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse, PlainTextResponse, Response

from config import (
    API_PORT,
    HOSTNAME,
    TEXT_EXTENSIONS,
    THEMES,
    THEMES_DIR,
    THUMBNAIL_MAX_AGE,
)
from browse.errors import BrowseError, InvalidRequest
from browse.index import DirectoryIndex
from browse.thumbnails import thumbnail_for
from discovery.responder import local_ipv4_addresses

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")
content_router = APIRouter()

# Desktop clients load the API from a different origin
CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}

# These will be injected by main.py at startup
_index: DirectoryIndex | None = None
_client_registry = None


def init_routes(index: DirectoryIndex, client_registry) -> None:
    """Inject service dependencies into the routes module."""
    global _index, _client_registry
    _index = index
    _client_registry = client_registry


def _http_error(e: BrowseError, endpoint: str) -> HTTPException:
    if e.status_code >= 500:
        logger.error(f"Error in {endpoint} for path {e.path!r}: {e.message}")
    else:
        logger.warning(f"{endpoint} rejected {e.path!r}: {e.message}")
    return HTTPException(status_code=e.status_code, detail=e.message)


# --- Browsing ---

@router.get("/list")
async def list_directory(path: str = "/"):
    """Immediate children of ``path``, directories first."""
    try:
        entries = await _index.list_directory(path)
    except BrowseError as e:
        raise _http_error(e, "/api/list")
    return [entry.to_wire() for entry in entries]


@router.get("/search")
async def search(term: str = ""):
    """Recursive, case-insensitive name search from the served root."""
    try:
        entries = await _index.search(term)
    except BrowseError as e:
        raise _http_error(e, "/api/search")
    return [entry.to_wire() for entry in entries]


# --- Content ---

@router.get("/file-content")
async def file_content(path: str = ""):
    """Text for .txt/.csv previews, raw bytes for everything else."""
    try:
        if not path:
            raise InvalidRequest("Path parameter is missing")
        if PurePosixPath(path.replace("\\", "/")).suffix.lower() in TEXT_EXTENSIONS:
            text = await _index.read_text(path)
            return PlainTextResponse(text, headers=CORS_HEADERS)
        target = await _index.locate_file(path)
    except BrowseError as e:
        raise _http_error(e, "/api/file-content")
    return FileResponse(target, headers=CORS_HEADERS)


@router.get("/thumbnail")
async def thumbnail(path: str = ""):
    """JPEG preview that fits in 200x200."""
    try:
        data = await thumbnail_for(_index, path)
    except BrowseError as e:
        raise _http_error(e, "/api/thumbnail")
    return Response(
        content=data,
        media_type="image/jpeg",
        headers={"Cache-Control": f"public, max-age={THUMBNAIL_MAX_AGE}", **CORS_HEADERS},
    )


@content_router.get("/files/{file_path:path}")
async def serve_file(file_path: str):
    """Raw file bytes; byte ranges are handled by FileResponse."""
    try:
        target = await _index.locate_file(file_path)
    except BrowseError as e:
        raise _http_error(e, "/files")
    return FileResponse(target, headers=CORS_HEADERS)


@content_router.get("/theme")
async def theme(name: str = "light"):
    if name not in THEMES:
        raise HTTPException(status_code=404, detail="Unknown theme")
    return FileResponse(THEMES_DIR / f"{name}.css", media_type="text/css")


# --- Server status ---

@router.get("/clients")
async def list_clients():
    return {"clients": _client_registry.clients}


@router.get("/server-info")
async def server_info():
    return {
        "hostname": HOSTNAME,
        "addresses": local_ipv4_addresses(),
        "port": API_PORT,
        "root_name": _index.root.name,
    }

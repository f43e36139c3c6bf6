from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from pydantic import BaseModel

# .env を読み込んでから core を import する（core は import 時に環境変数を読む）
load_dotenv()

from core import (  # noqa: E402
    EMPTY_IDS_MESSAGE,
    aggregate_result_to_dict,
    collect_playlist_stats,
    extract_playlist_ids,
    get_credential_cache,
)
from lib.cache_manager import TRACK_CACHE_TTL_S, get_track_cache  # noqa: E402
from lib.playlist_stats import AuthError, PlaylistStatsError, UpstreamError, ValidationError  # noqa: E402

# Basic logging configuration to ensure logger outputs appear in the terminal
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("uvicorn.error")
logger.setLevel(logging.INFO)


# =========================
# Pydantic models
# =========================

class PlaylistStatsBody(BaseModel):
    playlistIds: Optional[List[str]] = None
    merge: bool = False


class ArtistCountModel(BaseModel):
    name: str
    count: int


class YearCountModel(BaseModel):
    year: int
    count: int


class AddedSongModel(BaseModel):
    added_at: Optional[str] = None
    name: str
    artists: List[str]


class TimedSongModel(BaseModel):
    name: str
    artists: List[str]
    duration_ms: Optional[Union[int, float]] = None


class StatsModel(BaseModel):
    topArtists: List[ArtistCountModel]
    topArtistPerYear: Dict[int, ArtistCountModel]
    songsPerYear: List[YearCountModel]
    firstSong: Optional[AddedSongModel] = None
    lastSong: Optional[AddedSongModel] = None
    avgArtistsPerSong: float
    uniqueArtists: int
    uniqueAlbums: int
    longestSong: Optional[TimedSongModel] = None
    shortestSong: Optional[TimedSongModel] = None


class PlaylistMetaModel(BaseModel):
    name: str
    description: str = ""
    owner: Optional[str] = None
    totalTracks: int


class PlaylistStatsEntry(BaseModel):
    playlistId: str
    meta: Optional[PlaylistMetaModel] = None
    stats: Optional[StatsModel] = None
    error: Optional[Any] = None


class PlaylistStatsResponse(BaseModel):
    perPlaylist: List[PlaylistStatsEntry]
    merged: Optional[StatsModel] = None


# =========================
# FastAPI app & CORS
# =========================

app = FastAPI(
    title="Playlist Stats",
    version="1.0.0",
)

# Add GZip middleware for response compression (large topArtists lists)
app.add_middleware(GZipMiddleware, minimum_size=1000)

# Add request body size limit middleware (the body is just a list of ids)
from starlette.middleware.base import BaseHTTPMiddleware  # noqa: E402

MAX_BODY_BYTES = int(os.getenv("MAX_BODY_BYTES", 1 * 1024 * 1024))


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if request.method in ("POST", "PUT", "PATCH"):
            content_length = request.headers.get("content-length")
            if content_length and content_length.isdigit() and int(content_length) > MAX_BODY_BYTES:
                logger.warning(f"[RequestSizeLimit] Rejected oversized request: {content_length} bytes from {request.client}")
                return JSONResponse(
                    status_code=413,
                    content={"error": f"Request body too large (max {MAX_BODY_BYTES} bytes)"}
                )
        return await call_next(request)


app.add_middleware(RequestSizeLimitMiddleware)


@app.on_event("startup")
def _log_startup():
    logger.info("playlist-stats: startup event triggered")


@app.on_event("shutdown")
def _clear_caches():
    get_track_cache().clear()
    get_credential_cache().clear()


# デフォルトの許可オリジン
default_origins = [
    "http://localhost:3000",
]

# 環境変数 ALLOWED_ORIGINS があればそれを優先（カンマ区切り）
env_origins = os.getenv("ALLOWED_ORIGINS")
if env_origins:
    origins = [o.strip() for o in env_origins.split(",") if o.strip()]
else:
    origins = default_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =========================
# Error handlers
# =========================

@app.exception_handler(RequestValidationError)
async def _request_validation_error(request: Request, exc: RequestValidationError):
    # 文字列や数値の playlistIds、空ボディも 422 ではなく 400 {error} で返す
    logger.info(f"[playlist-stats] rejected malformed body: {exc.errors()}")
    return JSONResponse(status_code=400, content={"error": EMPTY_IDS_MESSAGE})


@app.exception_handler(ValidationError)
async def _validation_error(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(AuthError)
async def _auth_error(request: Request, exc: AuthError):
    logger.error(f"[playlist-stats] unable to get Spotify token: {exc}")
    return JSONResponse(status_code=502, content={"error": "Unable to get Spotify token"})


@app.exception_handler(UpstreamError)
async def _upstream_error(request: Request, exc: UpstreamError):
    # Only reaches here for failures outside the per-playlist phase (e.g. merge re-fetch)
    logger.error(f"[playlist-stats] upstream error: {exc}")
    return JSONResponse(status_code=502, content={"error": str(exc)})


@app.exception_handler(PlaylistStatsError)
async def _stats_error(request: Request, exc: PlaylistStatsError):
    logger.error(f"[playlist-stats] error: {exc}")
    return JSONResponse(status_code=500, content={"error": "Server error fetching playlist stats"})


# =========================
# Health check
# =========================

@app.get("/health", tags=["system"])
def health() -> Dict[str, Any]:
    return {
        "ok": True,
        "status": "ok",
        "build_commit": os.getenv("RENDER_GIT_COMMIT", "local")[:7],
        "track_cache_ttl_s": TRACK_CACHE_TTL_S,
    }


@app.get("/", tags=["system"])
def root() -> Dict[str, Any]:
    return {"ok": True, "status": "ok"}


# =========================
# Endpoints
# =========================

@app.post("/playlist-stats", response_model=PlaylistStatsResponse, response_model_exclude_unset=True)
async def playlist_stats(body: PlaylistStatsBody):
    """
    Request body:
    {
      "playlistIds": ["id1", "https://open.spotify.com/playlist/id2", ...],
      "merge": false   // true なら成功したプレイリストを連結した merged も返す
    }
    """
    raw_ids = body.playlistIds or []
    ids = extract_playlist_ids(raw_ids)
    logger.info(f"[playlist-stats] raw_ids={len(raw_ids)} ids={ids} merge={body.merge}")
    if not ids:
        raise ValidationError(EMPTY_IDS_MESSAGE)

    result = await collect_playlist_stats(ids, merge=body.merge)
    return aggregate_result_to_dict(result)


# =========================
# Local dev entrypoint
# =========================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
    )

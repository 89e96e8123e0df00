import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from hn_timeline.client import UpstreamError
from hn_timeline.config import is_debug_enabled, load_settings
from hn_timeline.logging_config import configure_logging, get_logger
from hn_timeline.service import FeedService

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging("DEBUG" if is_debug_enabled() else "INFO")
    app.state.service = FeedService.from_settings(load_settings())
    try:
        yield
    finally:
        await app.state.service.aclose()


app = FastAPI(title="HN Timeline API", lifespan=lifespan)

# Enable CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_service(request: Request) -> FeedService:
    return request.app.state.service


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError):
    logger.error("upstream-error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=502, content={"detail": str(exc)})


class CommentBatchRequest(BaseModel):
    run_id: int
    batch_size: int = Field(default=10, ge=1, le=100)
    concurrency: int = Field(default=6, ge=1, le=32)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/feed")
async def feed_route(
    seed: Optional[int] = None,
    refresh: bool = False,
    service: FeedService = Depends(get_service),
):
    entries = await service.get_mixed_feed(
        seed if seed is not None else int(time.time()),
        max_age_ms=0 if refresh else None,
    )
    return {
        "run_id": service.runs.current,
        "entries": [entry.to_dict() for entry in entries],
    }


@app.get("/feed/snapshot")
def feed_snapshot_route(service: FeedService = Depends(get_service)):
    snapshot = service.get_persisted_snapshot()
    if snapshot is None:
        raise HTTPException(status_code=404, detail="No feed snapshot cached")
    return {"age_ms": service.get_feed_cache_age_ms(), **snapshot.to_dict()}


@app.post("/feed/refresh")
async def feed_refresh_route(service: FeedService = Depends(get_service)):
    run_id, snapshot = await service.refresh()
    return {"run_id": run_id, **snapshot.to_dict()}


@app.post("/feed/comments")
async def feed_comments_route(
    req: CommentBatchRequest, service: FeedService = Depends(get_service)
):
    batch = await service.load_comment_batch(
        req.run_id, batch_size=req.batch_size, concurrency=req.concurrency
    )
    if batch is None:
        raise HTTPException(status_code=409, detail="Feed run is no longer current")
    return batch.to_dict()


@app.get("/stories/{story_id}/comments")
async def story_comments_route(
    story_id: int,
    batch_size: int = 20,
    reset: bool = False,
    service: FeedService = Depends(get_service),
):
    page = await service.get_story_thread_page(story_id, batch_size=batch_size, reset=reset)
    if page is None:
        raise HTTPException(status_code=404, detail="Story not found")
    return page.to_dict()


@app.get("/stories/{story_id}/thread")
async def story_thread_route(
    story_id: int,
    max_comments: Optional[int] = None,
    service: FeedService = Depends(get_service),
):
    thread = await service.get_story_thread(story_id, max_comments)
    if thread is None:
        raise HTTPException(status_code=404, detail="Story not found")
    return thread.to_dict()


@app.get("/comments/{comment_id}/context")
async def comment_context_route(
    comment_id: int, service: FeedService = Depends(get_service)
):
    context = await service.get_comment_context(comment_id)
    if context is None:
        raise HTTPException(status_code=404, detail="Comment context not found")
    return context.to_dict()


@app.get("/preview")
async def preview_route(
    url: str, host: Optional[str] = None, service: FeedService = Depends(get_service)
):
    preview = await service.get_story_preview(url, host)
    return preview.to_dict()

import logging
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from pydantic import BaseModel, Field

from lingolift.application.config import resolve_config
from lingolift.application.factory import build_server_library
from lingolift.application.server_sync import DEFAULT_OWNER, ServerLibrary
from lingolift.consts import VERSION
from lingolift.domain.errors import CardNotFoundError, LessonNotFoundError
from lingolift.infrastructure.wire import (
    ChangeSetPayload,
    LessonPayload,
    ServerUpdateSetPayload,
    WireModel,
    card_to_payload,
    decode_change_set,
    encode_server_updates,
    lesson_to_payload,
)

logger = logging.getLogger("lingolift.server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: resolve config once; the library loads its archive here
    logger.info(f"LingoLift Server v{VERSION} starting up...")
    config = resolve_config()
    app.state.config = config
    app.state.library = build_server_library(config)
    logger.info(f"Library archive: {config.server_db_path} (multi_user={config.multi_user})")
    yield
    # Shutdown
    logger.info("LingoLift Server shutting down...")


app = FastAPI(
    title="LingoLift Server",
    description="Reference sync server for LingoLift devices.",
    version=VERSION,
    lifespan=lifespan,
)


def get_library(request: Request) -> ServerLibrary:
    return request.app.state.library


def get_multi_user(request: Request) -> bool:
    return request.app.state.config.multi_user


def get_owner(
    authorization: str | None = Header(default=None),
    multi_user: bool = Depends(get_multi_user),
) -> str:
    """
    Scope requests by bearer token when running multi-user; otherwise one shared library.
    """
    if not multi_user:
        return DEFAULT_OWNER
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme == "Bearer" and token:
            return token
    raise HTTPException(status_code=401, detail="Unauthorized")


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


start_time = time.time()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


@app.post("/api/sync", response_model=ServerUpdateSetPayload, response_model_by_alias=True)
async def sync(
    req: ChangeSetPayload,
    owner: str = Depends(get_owner),
    library: ServerLibrary = Depends(get_library),
):
    """
    Apply a device's change-set and return everything newer than its watermark.
    """
    logger.info(f"Sync requested by {owner} since {req.last_sync_timestamp}")
    result = library.apply_sync(owner, decode_change_set(req))
    return encode_server_updates(result)


class CardInput(BaseModel):
    front: str
    back: str


class LessonCreateRequest(WireModel):
    title: str
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    markdown_content: str | None = None
    cards: list[CardInput] = Field(default_factory=list)


class CardCreateRequest(WireModel):
    lesson_id: str
    front: str
    back: str


@app.get("/api/lessons", response_model=list[LessonPayload], response_model_by_alias=True)
async def list_lessons(
    owner: str = Depends(get_owner), library: ServerLibrary = Depends(get_library)
):
    return [lesson_to_payload(lesson) for lesson in library.list_lessons(owner)]


@app.get("/api/lessons/trash", response_model=list[LessonPayload], response_model_by_alias=True)
async def list_deleted_lessons(
    owner: str = Depends(get_owner), library: ServerLibrary = Depends(get_library)
):
    return [lesson_to_payload(lesson) for lesson in library.list_lessons(owner, deleted=True)]


@app.post(
    "/api/lessons",
    status_code=201,
    response_model=LessonPayload,
    response_model_by_alias=True,
)
async def create_lesson(
    req: LessonCreateRequest,
    owner: str = Depends(get_owner),
    library: ServerLibrary = Depends(get_library),
):
    if not req.title.strip():
        raise HTTPException(status_code=400, detail="Title is required")
    lesson = library.create_lesson(
        owner,
        title=req.title,
        description=req.description,
        tags=req.tags,
        markdown_content=req.markdown_content,
        cards=[(c.front, c.back) for c in req.cards],
    )
    return lesson_to_payload(lesson)


@app.delete("/api/lessons/{lesson_id}")
async def delete_lesson(
    lesson_id: str,
    owner: str = Depends(get_owner),
    library: ServerLibrary = Depends(get_library),
):
    try:
        library.delete_lesson(owner, lesson_id)
    except LessonNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return {"message": "Lesson deleted"}


@app.post("/api/lessons/{lesson_id}/restore")
async def restore_lesson(
    lesson_id: str,
    owner: str = Depends(get_owner),
    library: ServerLibrary = Depends(get_library),
):
    try:
        library.restore_lesson(owner, lesson_id)
    except LessonNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return {"message": "Lesson restored"}


@app.post("/api/cards", status_code=201)
async def create_card(
    req: CardCreateRequest,
    owner: str = Depends(get_owner),
    library: ServerLibrary = Depends(get_library),
):
    try:
        card = library.add_card(owner, req.lesson_id, req.front, req.back)
    except LessonNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return card_to_payload(card).model_dump(by_alias=True)


@app.delete("/api/cards/{card_id}")
async def delete_card(
    card_id: str,
    owner: str = Depends(get_owner),
    library: ServerLibrary = Depends(get_library),
):
    try:
        library.delete_card(owner, card_id)
    except CardNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return {"message": "Card deleted"}

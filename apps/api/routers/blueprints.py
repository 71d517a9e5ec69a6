"""Blueprint submission, listing and search router."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from models.blueprint import Blueprint
from routers.auth_scope import AuthContext, get_auth_context
from routers.rate_limit import rate_limit
from services.blueprint_repository import SqlBlueprintRepository
from services.blueprints import BlueprintService, BlueprintSubmission, SearchFilter, submission_locks
from services.errors import (
    ArtifactUploadError,
    BlueprintServiceError,
    ImageUploadError,
    InputDecodeError,
    UserBannedError,
    UserNotFoundError,
)
from services.storage import (
    BlobNotFoundError,
    BlobStore,
    BlobStoreError,
    InvalidBlobKeyError,
    LocalBlobStore,
    guess_image_mime,
)
from services.users import SqlUserResolver

router = APIRouter()

ERROR_STATUS = {
    UserNotFoundError: 404,
    UserBannedError: 403,
    InputDecodeError: 422,
    ArtifactUploadError: 502,
    ImageUploadError: 502,
}


class SubmitBlueprintRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    blueprint_base64: str = Field(min_length=1)
    image_base64: str = Field(min_length=1)
    tags: Optional[List[str]] = None


class SearchBlueprintsRequest(BaseModel):
    creator: Optional[str] = None
    tags: Optional[List[str]] = None
    terms: Optional[List[str]] = None


class BlueprintResponse(BaseModel):
    id: str
    user_id: str
    name: str
    file_id: str
    tags: List[str]
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    creator: Optional[str] = None
    creator_steam_id: Optional[int] = None


class ExistsResponse(BaseModel):
    name: str
    exists: bool


def get_blob_store() -> BlobStore:
    return LocalBlobStore(settings.STORAGE_DIR)


def get_blueprint_service(
    db: AsyncSession = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
) -> BlueprintService:
    return BlueprintService(
        repository=SqlBlueprintRepository(db),
        blob_store=blob_store,
        user_resolver=SqlUserResolver(db),
        locks=submission_locks if settings.SERIALIZE_SUBMISSIONS else None,
    )


def _raise_http(exc: BlueprintServiceError) -> None:
    status_code = ERROR_STATUS.get(type(exc), 400)
    raise HTTPException(status_code=status_code, detail=exc.reason) from exc


def _raise_blob_http(exc: BlobStoreError) -> None:
    if isinstance(exc, BlobNotFoundError):
        raise HTTPException(status_code=404, detail="File not found") from exc
    if isinstance(exc, InvalidBlobKeyError):
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    raise HTTPException(status_code=502, detail="Storage unavailable") from exc


def _serialize(blueprint: Blueprint, include_owner: bool = False) -> BlueprintResponse:
    owner = blueprint.user if include_owner else None
    return BlueprintResponse(
        id=blueprint.id,
        user_id=blueprint.user_id,
        name=blueprint.name,
        file_id=blueprint.file_id,
        tags=list(blueprint.tags or []),
        created_at=blueprint.created_at.isoformat() if blueprint.created_at else None,
        updated_at=blueprint.updated_at.isoformat() if blueprint.updated_at else None,
        creator=owner.steam_name if owner is not None else None,
        creator_steam_id=owner.steam_id if owner is not None else None,
    )


def _check_size(data_base64: str, limit: int, label: str) -> None:
    # base64 inflates by 4/3; reject before decoding anything.
    if (len(data_base64) * 3) // 4 > limit:
        raise HTTPException(status_code=413, detail=f"{label} exceeds {limit} bytes.")


@router.get("/exists", response_model=ExistsResponse)
async def blueprint_exists(
    name: str = Query(min_length=1, max_length=200),
    auth: AuthContext = Depends(get_auth_context),
    service: BlueprintService = Depends(get_blueprint_service),
):
    """Check whether the caller already owns a blueprint with this name."""
    try:
        exists = await service.exists(auth.steam_id, name)
    except BlueprintServiceError as exc:
        _raise_http(exc)
    return ExistsResponse(name=name, exists=exists)


@router.get("/latest", response_model=List[BlueprintResponse])
async def latest_blueprints(
    amount: int = Query(10, ge=0),
    service: BlueprintService = Depends(get_blueprint_service),
):
    """Most recently created or updated blueprints, newest first."""
    amount = min(amount, max(int(settings.LATEST_MAX_AMOUNT), 0))
    blueprints = await service.latest(amount)
    return [_serialize(blueprint, include_owner=True) for blueprint in blueprints]


@router.post("/submit", response_model=BlueprintResponse)
async def submit_blueprint(
    request: SubmitBlueprintRequest,
    _rate_limit: None = Depends(rate_limit("blueprint_submit", limit=30, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    service: BlueprintService = Depends(get_blueprint_service),
):
    """Upload a blueprint and its preview image, replacing the caller's blueprint of the same name."""
    _check_size(request.blueprint_base64, settings.MAX_BLUEPRINT_BYTES, "Blueprint")
    _check_size(request.image_base64, settings.MAX_IMAGE_BYTES, "Image")

    submission = BlueprintSubmission(
        name=request.name,
        blueprint_base64=request.blueprint_base64,
        image_base64=request.image_base64,
        tags=request.tags,
    )
    try:
        blueprint = await service.submit(auth.steam_id, submission)
    except BlueprintServiceError as exc:
        _raise_http(exc)
    return _serialize(blueprint)


@router.post("/search", response_model=List[BlueprintResponse])
async def search_blueprints(
    request: SearchBlueprintsRequest,
    service: BlueprintService = Depends(get_blueprint_service),
):
    """Filter blueprints by creator name, tags and free-text terms."""
    search_filter = SearchFilter(
        creator=request.creator,
        tags=list(request.tags or []),
        terms=list(request.terms or []),
    )
    blueprints = await service.search(search_filter)
    return [_serialize(blueprint, include_owner=True) for blueprint in blueprints]


@router.get("/files/{user_id}/{file_id}/blueprint")
async def download_blueprint(
    user_id: str,
    file_id: str,
    blob_store: BlobStore = Depends(get_blob_store),
):
    """Raw blueprint bytes."""
    try:
        data = await blob_store.load_blueprint(user_id, file_id)
    except BlobStoreError as exc:
        _raise_blob_http(exc)
    return Response(content=data, media_type="application/octet-stream")


@router.get("/files/{user_id}/{file_id}/image")
async def download_image(
    user_id: str,
    file_id: str,
    blob_store: BlobStore = Depends(get_blob_store),
):
    try:
        data = await blob_store.load_image(user_id, file_id)
    except BlobStoreError as exc:
        _raise_blob_http(exc)
    return Response(content=data, media_type=guess_image_mime(data))

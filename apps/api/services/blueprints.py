"""Blueprint submission, lookup and search service."""

from __future__ import annotations

import asyncio
import base64
import logging
import uuid
from contextlib import asynccontextmanager, nullcontext
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Hashable, List, Optional, Sequence

from models.blueprint import Blueprint
from models.user import User
from services.blueprint_repository import BlueprintRepository
from services.errors import (
    ArtifactUploadError,
    ImageUploadError,
    InputDecodeError,
    UserBannedError,
    UserNotFoundError,
)
from services.storage import BlobStore, BlobStoreError
from services.users import UserResolver

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class BlueprintSubmission:
    name: str
    blueprint_base64: str
    image_base64: str
    tags: Optional[List[str]] = None


@dataclass
class SearchFilter:
    creator: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    terms: List[str] = field(default_factory=list)


class KeyedLock:
    """Per-key asyncio locks, dropped once no caller holds or waits on a key."""

    def __init__(self) -> None:
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._holders: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


# Serializes check-then-write per (user_id, name) inside this process only.
# Separate API processes racing on the same key can still insert twice.
submission_locks = KeyedLock()


def decode_base64(value: str, label: str) -> bytes:
    # Line breaks and spaces are allowed, as in MIME-wrapped base64.
    compact = "".join((value or "").split())
    try:
        return base64.b64decode(compact, validate=True)
    except ValueError as exc:
        raise InputDecodeError(f"{label} is not valid base64") from exc


def _contains(haystack: Optional[str], needle: str) -> bool:
    # Upper-casing keeps "İ" distinct from a plain "i".
    return needle.upper() in (haystack or "").upper()


def matches_creator(blueprint: Blueprint, creator: str) -> bool:
    owner = blueprint.user
    return _contains(owner.steam_name if owner is not None else "", creator)


def matches_name(blueprint: Blueprint, terms: Sequence[str]) -> bool:
    """Every term must appear in the blueprint name."""
    if not terms:
        return False
    return all(_contains(blueprint.name, term) for term in terms)


def matches_tags(blueprint: Blueprint, tags: Sequence[str]) -> bool:
    """Every requested tag must appear inside at least one of the blueprint's tags."""
    if not tags:
        return False
    own_tags = blueprint.tags or []
    return all(any(_contains(own, tag) for own in own_tags) for tag in tags)


def matches_filter(blueprint: Blueprint, search_filter: SearchFilter) -> bool:
    creator = (search_filter.creator or "").strip()
    if creator and not matches_creator(blueprint, search_filter.creator):
        return False
    if search_filter.tags and not matches_tags(blueprint, search_filter.tags):
        return False
    # Terms match the name as a whole or the tag set as a whole, never a mix.
    terms = search_filter.terms
    if terms and not (matches_name(blueprint, terms) or matches_tags(blueprint, terms)):
        return False
    return True


def _last_touched(blueprint: Blueprint) -> datetime:
    stamp = blueprint.updated_at or blueprint.created_at
    if stamp is None:
        return _EPOCH
    if stamp.tzinfo is None:
        return stamp.replace(tzinfo=timezone.utc)
    return stamp


class BlueprintService:
    """Core blueprint workflows over injected user, blob and record stores."""

    def __init__(
        self,
        repository: BlueprintRepository,
        blob_store: BlobStore,
        user_resolver: UserResolver,
        locks: Optional[KeyedLock] = None,
    ):
        self._repository = repository
        self._blob_store = blob_store
        self._users = user_resolver
        self._locks = locks

    async def _resolve_submitter(self, steam_id: int) -> User:
        user = await self._users.try_resolve(steam_id)
        if user is None:
            logger.warning("Rejected request from unknown steam id %s", steam_id)
            raise UserNotFoundError()
        if user.banned:
            logger.warning("Rejected request from banned user %s", user.id)
            raise UserBannedError()
        return user

    async def exists(self, steam_id: int, name: str) -> bool:
        user = await self._resolve_submitter(steam_id)
        return await self._repository.find_by_owner_and_name(user.id, name) is not None

    async def latest(self, amount: int) -> List[Blueprint]:
        if amount < 0:
            raise ValueError("amount must be >= 0")
        blueprints = await self._repository.find_all_with_owner()
        return sorted(blueprints, key=_last_touched, reverse=True)[:amount]

    async def search(self, search_filter: SearchFilter) -> List[Blueprint]:
        blueprints = await self._repository.find_all_with_owner()
        return [blueprint for blueprint in blueprints if matches_filter(blueprint, search_filter)]

    async def submit(self, steam_id: int, submission: BlueprintSubmission) -> Blueprint:
        """Create a blueprint or overwrite the caller's existing one with the same name.

        Payloads are decoded before any lookup. Both blobs are written, blueprint
        first, before the record is touched; an image failure can leave the
        blueprint blob behind.
        """
        blueprint_bytes = decode_base64(submission.blueprint_base64, "Blueprint")
        image_bytes = decode_base64(submission.image_base64, "Image")
        user = await self._resolve_submitter(steam_id)

        guard = self._locks.hold((user.id, submission.name)) if self._locks is not None else nullcontext()
        async with guard:
            return await self._upsert(user, submission, blueprint_bytes, image_bytes)

    async def _upsert(
        self,
        user: User,
        submission: BlueprintSubmission,
        blueprint_bytes: bytes,
        image_bytes: bytes,
    ) -> Blueprint:
        existing = await self._repository.find_by_owner_and_name(user.id, submission.name)
        file_id = existing.file_id if existing is not None else str(uuid.uuid4())

        await self._upload(user.id, file_id, blueprint_bytes, image_bytes)

        now = datetime.now(timezone.utc)
        if existing is not None:
            if submission.tags:
                existing.tags = list(submission.tags)
            existing.updated_at = now
            updated = await self._repository.update(existing)
            logger.info("Updated blueprint %s (%s) for user %s", updated.id, updated.name, user.id)
            return updated

        blueprint = Blueprint(
            id=str(uuid.uuid4()),
            user_id=user.id,
            name=submission.name,
            file_id=file_id,
            tags=list(submission.tags or []),
            created_at=now,
        )
        created = await self._repository.insert(blueprint)
        logger.info("Created blueprint %s (%s) for user %s", created.id, created.name, user.id)
        return created

    async def _upload(self, user_id: str, file_id: str, blueprint_bytes: bytes, image_bytes: bytes) -> None:
        try:
            await self._blob_store.save_blueprint(user_id, file_id, blueprint_bytes)
        except BlobStoreError as exc:
            raise ArtifactUploadError(f"Failed to upload blueprint: {exc}") from exc

        try:
            await self._blob_store.save_image(user_id, file_id, image_bytes)
        except BlobStoreError as exc:
            logger.warning("Image upload failed for %s/%s; blueprint blob left in place", user_id, file_id)
            raise ImageUploadError(f"Failed to upload image: {exc}") from exc

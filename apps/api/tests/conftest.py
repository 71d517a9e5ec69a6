from datetime import datetime, timezone

import pytest

from main import app
from models.blueprint import Blueprint
from models.user import User
from routers import rate_limit
from services.blueprints import BlueprintService, KeyedLock
from services.storage import BlobStoreError


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous


class FakeUserResolver:
    def __init__(self, users=None):
        self.users = {user.steam_id: user for user in (users or [])}
        self.calls = []

    async def try_resolve(self, steam_id):
        self.calls.append(steam_id)
        return self.users.get(steam_id)


class FakeBlobStore:
    def __init__(self):
        self.blobs = {}
        self.calls = []
        self.fail_on = set()

    async def _save(self, bucket, user_id, file_id, data):
        self.calls.append((bucket, user_id, file_id))
        if bucket in self.fail_on:
            raise BlobStoreError(f"{bucket} bucket offline")
        self.blobs[(bucket, user_id, file_id)] = data

    async def save_blueprint(self, user_id, file_id, data):
        await self._save("blueprints", user_id, file_id, data)

    async def save_image(self, user_id, file_id, data):
        await self._save("images", user_id, file_id, data)

    async def load_blueprint(self, user_id, file_id):
        return self.blobs[("blueprints", user_id, file_id)]

    async def load_image(self, user_id, file_id):
        return self.blobs[("images", user_id, file_id)]


class FakeBlueprintRepository:
    def __init__(self, blueprints=None):
        self.blueprints = list(blueprints or [])
        self.calls = []

    @property
    def writes(self):
        return [call for call in self.calls if call in {"insert", "update"}]

    async def find_by_owner_and_name(self, user_id, name):
        self.calls.append("find_by_owner_and_name")
        for blueprint in self.blueprints:
            if blueprint.user_id == user_id and blueprint.name == name:
                return blueprint
        return None

    async def find_all_with_owner(self):
        self.calls.append("find_all_with_owner")
        return list(self.blueprints)

    async def insert(self, blueprint):
        self.calls.append("insert")
        self.blueprints.append(blueprint)
        return blueprint

    async def update(self, blueprint):
        self.calls.append("update")
        return blueprint


def make_user(user_id, steam_id, steam_name="", banned=False):
    return User(id=user_id, steam_id=steam_id, steam_name=steam_name, banned=banned)


def make_blueprint(owner, name, tags=None, created_at=None, updated_at=None, file_id=None):
    return Blueprint(
        id=f"bp-{owner.id}-{name}",
        user_id=owner.id,
        name=name,
        file_id=file_id or f"file-{owner.id}-{name}".replace(" ", "_"),
        tags=list(tags or []),
        created_at=created_at or datetime(2026, 1, 1, tzinfo=timezone.utc),
        updated_at=updated_at,
        user=owner,
    )


@pytest.fixture
def alice():
    return make_user("user-alice", 76561198000000001, "AliceRacer")


@pytest.fixture
def mallory():
    return make_user("user-mallory", 76561198000000666, "Mallory", banned=True)


@pytest.fixture
def user_resolver(alice, mallory):
    return FakeUserResolver([alice, mallory])


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def repository():
    return FakeBlueprintRepository()


@pytest.fixture
def service(repository, blob_store, user_resolver):
    return BlueprintService(repository, blob_store, user_resolver, locks=KeyedLock())


@pytest.fixture
def user_factory():
    return make_user


@pytest.fixture
def blueprint_factory():
    return make_blueprint

from datetime import datetime, timedelta, timezone

import pytest

from services.blueprints import SearchFilter, matches_filter, matches_tags


BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def catalog(repository, alice, user_factory, blueprint_factory):
    bob = user_factory("user-bob", 76561198000000002, "BobTheBuilder")
    repository.blueprints.extend(
        [
            blueprint_factory(alice, "Race Car", tags=["Vehicle"]),
            blueprint_factory(bob, "Widget", tags=["sportscar", "Gadget"]),
            blueprint_factory(bob, "xy-thing"),
            blueprint_factory(alice, "Alpha Ramp", tags=["Alpha", "Zzz", "Bumpy"]),
            blueprint_factory(alice, "Alpha Only", tags=["Alpha"]),
        ]
    )
    return repository


def _names(blueprints):
    return sorted(blueprint.name for blueprint in blueprints)


@pytest.mark.asyncio
async def test_empty_filter_returns_everything(service, catalog):
    results = await service.search(SearchFilter())
    assert len(results) == len(catalog.blueprints)


@pytest.mark.asyncio
async def test_none_and_whitespace_fields_apply_no_constraint(service, catalog):
    results = await service.search(SearchFilter(creator="   ", tags=[], terms=[]))
    assert len(results) == len(catalog.blueprints)


@pytest.mark.asyncio
async def test_creator_is_case_insensitive_substring_of_owner_name(service, catalog):
    results = await service.search(SearchFilter(creator="theBUILD"))
    assert _names(results) == ["Widget", "xy-thing"]


@pytest.mark.asyncio
async def test_every_requested_tag_needs_a_containing_tag(service, catalog):
    results = await service.search(SearchFilter(tags=["a", "b"]))
    # "a" in Alpha, "b" in Bumpy; Alpha Only has nothing containing "b".
    assert "Alpha Ramp" in _names(results)
    assert "Alpha Only" not in _names(results)


@pytest.mark.asyncio
async def test_tag_filter_excludes_untagged_blueprints(service, catalog):
    results = await service.search(SearchFilter(tags=["thing"]))
    assert results == []


@pytest.mark.asyncio
async def test_terms_match_by_name_or_by_tags(service, catalog):
    results = await service.search(SearchFilter(terms=["car"]))
    # "Race Car" via the name, "Widget" via its "sportscar" tag.
    assert _names(results) == ["Race Car", "Widget"]


@pytest.mark.asyncio
async def test_terms_match_name_even_without_tags(service, catalog):
    results = await service.search(SearchFilter(terms=["x", "Y"]))
    assert _names(results) == ["xy-thing"]


@pytest.mark.asyncio
async def test_terms_split_between_name_and_tags_do_not_match(service, catalog):
    # "widget" only in the name, "gadget" only in the tags.
    results = await service.search(SearchFilter(terms=["widget", "gadget"]))
    assert results == []


@pytest.mark.asyncio
async def test_all_applied_filters_must_pass(service, catalog):
    results = await service.search(SearchFilter(creator="alice", tags=["alpha"], terms=["ramp"]))
    assert _names(results) == ["Alpha Ramp"]

    results = await service.search(SearchFilter(creator="bob", tags=["alpha"]))
    assert results == []


def test_matches_tags_is_false_for_empty_request(blueprint_factory, alice):
    blueprint = blueprint_factory(alice, "Anything", tags=["race"])
    assert matches_tags(blueprint, []) is False
    assert matches_filter(blueprint, SearchFilter(tags=[])) is True


def test_dotted_capital_i_does_not_match_plain_i(blueprint_factory, alice):
    blueprint = blueprint_factory(alice, "İstanbul", tags=["İzmir"])
    assert matches_filter(blueprint, SearchFilter(terms=["i"])) is False
    assert matches_filter(blueprint, SearchFilter(tags=["i"])) is False
    assert matches_filter(blueprint, SearchFilter(terms=["STANBUL"])) is True


def test_blueprint_without_owner_never_matches_creator(blueprint_factory, alice):
    blueprint = blueprint_factory(alice, "Orphan")
    blueprint.user = None
    assert matches_filter(blueprint, SearchFilter(creator="alice")) is False
    assert matches_filter(blueprint, SearchFilter()) is True


@pytest.mark.asyncio
async def test_latest_orders_by_last_touch_descending(service, repository, alice, blueprint_factory):
    repository.blueprints.extend(
        [
            blueprint_factory(alice, "Old", created_at=BASE_TIME),
            blueprint_factory(
                alice, "Old but updated", created_at=BASE_TIME - timedelta(days=5), updated_at=BASE_TIME + timedelta(days=2)
            ),
            blueprint_factory(alice, "New", created_at=BASE_TIME + timedelta(days=1)),
        ]
    )

    results = await service.latest(2)
    assert [blueprint.name for blueprint in results] == ["Old but updated", "New"]
    assert repository.calls == ["find_all_with_owner"]


@pytest.mark.asyncio
async def test_latest_handles_zero_and_oversized_amounts(service, repository, alice, blueprint_factory):
    repository.blueprints.append(blueprint_factory(alice, "Only"))
    assert await service.latest(0) == []
    assert len(await service.latest(50)) == 1


@pytest.mark.asyncio
async def test_latest_mixes_naive_and_aware_timestamps(service, repository, alice, blueprint_factory):
    naive = blueprint_factory(alice, "Naive", created_at=datetime(2026, 5, 1, 0, 0))
    aware = blueprint_factory(alice, "Aware", created_at=datetime(2026, 4, 1, 0, 0, tzinfo=timezone.utc))
    repository.blueprints.extend([aware, naive])

    results = await service.latest(2)
    assert [blueprint.name for blueprint in results] == ["Naive", "Aware"]


@pytest.mark.asyncio
async def test_latest_rejects_negative_amount(service):
    with pytest.raises(ValueError):
        await service.latest(-1)

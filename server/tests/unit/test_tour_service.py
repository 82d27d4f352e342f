"""Unit tests for tour service."""

from uuid import uuid4

import pytest

from tours_api.core.exceptions import ConflictError, NotFoundError, ValidationError
from tours_api.schemas.tour import CreateTourRequest, UpdateTourRequest
from tours_api.services.tour_service import TourService, slugify


@pytest.mark.asyncio
async def test_create_tour(test_session, sample_tour_data):
    """Test creating a tour."""
    service = TourService(test_session)

    tour = await service.create_tour(CreateTourRequest.model_validate(sample_tour_data))

    assert tour.id is not None
    assert tour.name == sample_tour_data["name"]
    assert tour.slug == "northern-lights-adventure"
    assert tour.max_group_size == sample_tour_data["maxGroupSize"]
    assert [d.starts_at.isoformat() for d in tour.start_dates] == [
        "2024-12-15T09:00:00",
        "2025-01-10T09:00:00",
    ]
    assert tour.version == 1
    assert tour.created_at is not None


@pytest.mark.asyncio
async def test_create_tour_duplicate_name(test_session, sample_tour_data):
    """Test creating a tour with a taken name raises ConflictError."""
    service = TourService(test_session)
    await service.create_tour(CreateTourRequest.model_validate(sample_tour_data))

    with pytest.raises(ConflictError) as exc_info:
        await service.create_tour(CreateTourRequest.model_validate(sample_tour_data))

    assert exc_info.value.status_code == 409


@pytest.mark.asyncio
async def test_get_tour_by_id(test_session, create_tours, sample_tour_data):
    service = TourService(test_session)
    (created,) = await create_tours(sample_tour_data)

    found = await service.get_tour_by_id(created.id)

    assert found is not None
    assert found.id == created.id


@pytest.mark.asyncio
async def test_get_tour_by_id_not_found(test_session):
    """Test getting a non-existent tour returns None."""
    service = TourService(test_session)

    assert await service.get_tour_by_id(uuid4()) is None


@pytest.mark.asyncio
async def test_get_tour_by_id_or_raise_not_found(test_session):
    service = TourService(test_session)

    with pytest.raises(NotFoundError) as exc_info:
        await service.get_tour_by_id_or_raise(uuid4())

    assert exc_info.value.status_code == 404
    assert exc_info.value.is_operational
    assert exc_info.value.message


@pytest.mark.asyncio
async def test_update_tour(test_session, create_tours, sample_tour_data):
    service = TourService(test_session)
    (created,) = await create_tours(sample_tour_data)

    updated = await service.update_tour(
        created.id,
        UpdateTourRequest.model_validate({
            "name": "Aurora Borealis Deluxe",
            "price": 750,
            "startDates": ["2026-02-01T08:00:00+01:00"],
        })
    )

    assert updated.name == "Aurora Borealis Deluxe"
    assert updated.slug == "aurora-borealis-deluxe"
    assert updated.price == 750
    assert [d.starts_at.isoformat() for d in updated.start_dates] == ["2026-02-01T07:00:00"]
    assert updated.version == 2


@pytest.mark.asyncio
async def test_update_tour_rechecks_discount(test_session, create_tours, sample_tour_data):
    service = TourService(test_session)
    (created,) = await create_tours(sample_tour_data)

    with pytest.raises(ValidationError):
        await service.update_tour(created.id, UpdateTourRequest(price_discount=600))


@pytest.mark.asyncio
async def test_update_tour_name_conflict(test_session, create_tours, tour_data_factory):
    service = TourService(test_session)
    first, second = await create_tours(
        tour_data_factory(name="The Forest Hiker"),
        tour_data_factory(name="The Sea Explorer"),
    )

    with pytest.raises(ConflictError):
        await service.update_tour(second.id, UpdateTourRequest(name="The Forest Hiker"))


@pytest.mark.asyncio
async def test_update_tour_not_found(test_session):
    service = TourService(test_session)

    with pytest.raises(NotFoundError):
        await service.update_tour(uuid4(), UpdateTourRequest(price=100))


@pytest.mark.asyncio
async def test_delete_tour(test_session, create_tours, sample_tour_data):
    service = TourService(test_session)
    (created,) = await create_tours(sample_tour_data)

    await service.delete_tour(created.id)

    assert await service.get_tour_by_id(created.id) is None
    with pytest.raises(NotFoundError):
        await service.delete_tour(created.id)


@pytest.mark.asyncio
async def test_list_tours_pagination(test_session, ten_tours):
    service = TourService(test_session)

    page_two = await service.list_tours(service.build_directives({"sort": "price", "page": "2", "limit": "3"}))
    past_end = await service.list_tours(service.build_directives({"sort": "price", "page": "5", "limit": "3"}))

    assert [t.price for t in page_two] == [400, 500, 600]
    assert past_end == []


@pytest.mark.asyncio
async def test_list_tours_default_sort_is_newest_first(test_session, ten_tours):
    service = TourService(test_session)

    tours = await service.list_tours(service.build_directives({}))

    assert [t.name for t in tours] == [t.name for t in reversed(ten_tours)]


@pytest.mark.asyncio
async def test_list_tours_hides_secret_tours(test_session, create_tours, tour_data_factory):
    service = TourService(test_session)
    await create_tours(
        tour_data_factory(name="The Public Wanderer"),
        tour_data_factory(name="The Hidden Wanderer", secretTour=True),
    )

    tours = await service.list_tours(service.build_directives({}))

    assert [t.name for t in tours] == ["The Public Wanderer"]


@pytest.mark.asyncio
async def test_tour_stats(test_session, create_tours, tour_data_factory):
    service = TourService(test_session)
    await create_tours(
        tour_data_factory(name="Medium Tour Alpha", difficulty="medium", ratingsAverage=4.7, ratingsQuantity=10, price=500),
        tour_data_factory(name="Medium Tour Bravo", difficulty="medium", ratingsAverage=4.9, ratingsQuantity=20, price=300),
        tour_data_factory(name="Hard Tour Charlie", difficulty="difficult", ratingsAverage=4.5, ratingsQuantity=5, price=900),
        tour_data_factory(name="Hard Tour Delta", difficulty="difficult", ratingsAverage=4.0, ratingsQuantity=50, price=100),
        tour_data_factory(name="Easy Tour Echo", difficulty="easy", ratingsAverage=4.8, ratingsQuantity=7, price=200),
    )

    stats = await service.get_tour_stats()

    assert [s.difficulty for s in stats] == ["MEDIUM", "DIFFICULT"]
    medium, difficult = stats
    assert medium.num_tours == 2
    assert medium.num_ratings == 30
    assert medium.avg_rating == pytest.approx(4.8)
    assert medium.avg_price == pytest.approx(400)
    assert (medium.min_price, medium.max_price) == (300, 500)
    # The 4.0-rated difficult tour is not counted
    assert difficult.num_tours == 1
    assert difficult.num_ratings == 5
    assert difficult.min_price == 900


@pytest.mark.asyncio
async def test_tour_stats_empty(test_session):
    assert await TourService(test_session).get_tour_stats() == []


@pytest.mark.asyncio
async def test_monthly_plan(test_session, create_tours, tour_data_factory):
    service = TourService(test_session)
    await create_tours(
        tour_data_factory(
            name="The Forest Hiker",
            startDates=["2021-04-25T09:00:00Z", "2021-07-20T09:00:00Z", "2021-10-05T09:00:00Z"],
        ),
        tour_data_factory(
            name="The Sea Explorer",
            startDates=["2021-06-19T09:00:00Z", "2021-07-20T09:00:00Z", "2021-08-18T09:00:00Z"],
        ),
        tour_data_factory(
            name="The Snow Adventurer",
            startDates=["2020-12-31T09:00:00Z", "2021-12-31T18:00:00Z", "2022-01-05T09:00:00Z"],
        ),
    )

    plan = await service.get_monthly_plan(2021)

    assert [entry.month for entry in plan] == [7, 4, 6, 8, 10, 12]
    assert plan[0].num_tours_start == 2
    assert plan[0].tours == ["The Forest Hiker", "The Sea Explorer"]
    assert plan[-1].tours == ["The Snow Adventurer"]
    assert all(entry.num_tours_start == 1 for entry in plan[1:])


@pytest.mark.asyncio
async def test_monthly_plan_caps_at_twelve_groups(test_session, create_tours, tour_data_factory):
    service = TourService(test_session)
    await create_tours(
        tour_data_factory(
            name="The Year Rounder",
            startDates=[f"2023-{month:02d}-10T09:00:00Z" for month in range(1, 13)],
        )
    )

    plan = await service.get_monthly_plan(2023)

    assert len(plan) == 12
    assert sorted(entry.month for entry in plan) == list(range(1, 13))


@pytest.mark.asyncio
@pytest.mark.parametrize("year", [1969, 10000, -5])
async def test_monthly_plan_rejects_out_of_range_year(test_session, year):
    with pytest.raises(ValidationError):
        await TourService(test_session).get_monthly_plan(year)


def test_slugify():
    assert slugify("The Sea Explorer") == "the-sea-explorer"
    assert slugify("  Rock & Roll: Tour!  ") == "rock-roll-tour"

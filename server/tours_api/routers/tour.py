"""Tour router for tour CRUD operations and reports."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.exceptions import catch_async
from ..core.query_features import QueryDirectives
from ..schemas.common import ErrorEnvelope, success_envelope
from ..schemas.tour import CreateTourRequest, UpdateTourRequest, tour_to_dict
from ..services.tour_service import TourService, top_cheap_params

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/tours",
    tags=["tours"],
    responses={
        400: {"model": ErrorEnvelope, "description": "Invalid input"},
        500: {"model": ErrorEnvelope, "description": "Unexpected error"},
    },
)


async def _list_response(service: TourService, directives: QueryDirectives) -> JSONResponse:
    tours = await service.list_tours(directives)
    fields = service.visible_fields(directives)
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=success_envelope(
            {"tours": [tour_to_dict(tour, fields) for tour in tours]},
            results=len(tours),
        ),
    )


@router.get("", summary="List tours")
@catch_async
async def get_all_tours(
    request: Request,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """
    List tours.

    Supports ``field=value`` and ``field[gte|gt|lte|lt]=value`` filters,
    ``sort=a,-b``, ``fields=a,b`` (or ``-a,-b``), ``page`` and ``limit``.
    """
    service = TourService(db)
    directives = service.build_directives(request.query_params)
    return await _list_response(service, directives)


@router.get("/top-5-cheap", summary="Five best rated, cheapest tours")
@catch_async
async def get_top_cheap_tours(
    request: Request,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """Same as listing with ``limit=5&sort=-ratingsAverage,price`` and a short projection."""
    service = TourService(db)
    directives = service.build_directives(top_cheap_params(request.query_params))
    return await _list_response(service, directives)


@router.get("/tour-stats", summary="Statistics by difficulty")
@router.get("/stats", include_in_schema=False)
@catch_async
async def get_tour_stats(db: AsyncSession = Depends(get_db)) -> JSONResponse:
    stats = await TourService(db).get_tour_stats()
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=success_envelope({"stats": [s.model_dump(by_alias=True) for s in stats]}),
    )


@router.get("/monthly-plan/{year}", summary="Tour starts per month")
@catch_async
async def get_monthly_plan(
    year: int,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """Number of tour starts and tour names for each month of ``year``."""
    plan = await TourService(db).get_monthly_plan(year)
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=success_envelope({"plan": [entry.model_dump(by_alias=True) for entry in plan]}),
    )


@router.get("/{tour_id}", summary="Get a tour", responses={404: {"model": ErrorEnvelope}})
@catch_async
async def get_tour(
    tour_id: UUID,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    tour = await TourService(db).get_tour_by_id_or_raise(tour_id)
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=success_envelope({"tour": tour_to_dict(tour)}),
    )


@router.post(
    "",
    summary="Create a tour",
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorEnvelope}},
)
@catch_async
async def create_tour(
    request: CreateTourRequest,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """Create a new tour; names are unique."""
    tour = await TourService(db).create_tour(request)
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content=success_envelope({"tour": tour_to_dict(tour)}),
    )


@router.patch(
    "/{tour_id}",
    summary="Update a tour",
    responses={404: {"model": ErrorEnvelope}, 409: {"model": ErrorEnvelope}},
)
@catch_async
async def update_tour(
    tour_id: UUID,
    request: UpdateTourRequest,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """Partially update a tour and return the updated version."""
    tour = await TourService(db).update_tour(tour_id, request)
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=success_envelope({"tour": tour_to_dict(tour)}),
    )


@router.delete(
    "/{tour_id}",
    summary="Delete a tour",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses={404: {"model": ErrorEnvelope}},
)
@catch_async
async def delete_tour(
    tour_id: UUID,
    db: AsyncSession = Depends(get_db)
) -> Response:
    await TourService(db).delete_tour(tour_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

"""Tour service for business logic operations."""

import logging
import re
from datetime import datetime
from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import extract, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..core.observability import metrics_collector
from ..core.query_features import (
    RESERVED_PARAMS,
    QueryDirectives,
    QueryFeatures,
    QueryFieldRegistry,
    QueryParams,
    SortKey,
    parse_query_params,
    query_pairs,
)
from ..models.tour import Tour, TourStartDate
from ..schemas.tour import (
    HIDDEN_TOUR_FIELDS,
    TOUR_FIELDS,
    CreateTourRequest,
    MonthlyPlanEntry,
    TourStats,
    UpdateTourRequest,
)

logger = logging.getLogger(__name__)

TOUR_REGISTRY = QueryFieldRegistry(
    Tour,
    TOUR_FIELDS,
    hidden=HIDDEN_TOUR_FIELDS,
    default_sort=(SortKey("createdAt", descending=True),),
)

# Fixed parameters of the "top 5 cheap" listing
TOP_CHEAP_PARAMS = (
    ("limit", "5"),
    ("sort", "-ratingsAverage,price"),
    ("fields", "name,price,ratingsAverage,summary,difficulty"),
)

STATS_MIN_RATING = 4.5
STATS_EXCLUDED_DIFFICULTY = "EASY"
MONTHLY_PLAN_MAX_GROUPS = 12
MIN_PLAN_YEAR = 1970
MAX_PLAN_YEAR = 9999

# Joins tour names inside one aggregate row; cannot appear in a name
_NAME_SEPARATOR = "\x1f"


def slugify(name: str) -> str:
    """Lowercase, hyphen-separated slug for a tour name."""
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def top_cheap_params(params: QueryParams) -> List[Tuple[str, str]]:
    """Return the caller's filters combined with the fixed top-5 controls."""
    return [(k, v) for k, v in query_pairs(params) if k not in RESERVED_PARAMS] + list(TOP_CHEAP_PARAMS)


class TourService:
    """Service for tour-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def build_directives(params: QueryParams) -> QueryDirectives:
        """Translate request query parameters for the tours collection."""
        return parse_query_params(params, TOUR_REGISTRY)

    @staticmethod
    def visible_fields(directives: QueryDirectives) -> Tuple[str, ...]:
        """Public field names a listing built from ``directives`` returns."""
        return TOUR_REGISTRY.visible_fields(directives.projection)

    async def list_tours(self, directives: QueryDirectives) -> List[Tour]:
        """
        List public tours.

        Args:
            directives: Filter, sort, projection and pagination to apply

        Returns:
            The requested page of tours, possibly empty
        """
        stmt = select(Tour).where(Tour.secret_tour.is_(False))
        features = (
            QueryFeatures(stmt, directives, TOUR_REGISTRY)
            .filter()
            .sort()
            .limit_fields()
            .paginate()
        )
        result = await self.db.execute(features.statement)
        tours = list(result.scalars().all())

        logger.debug(
            "Tours listed",
            extra={
                "results": len(tours),
                "page": directives.page,
                "limit": directives.limit,
                "filters": len(directives.filters),
            }
        )
        return tours

    async def get_tour_by_id(self, tour_id: UUID) -> Optional[Tour]:
        """
        Get tour by ID.

        Args:
            tour_id: Tour ID to search for

        Returns:
            Tour if found, None otherwise
        """
        stmt = select(Tour).where(Tour.id == tour_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_tour_by_name(self, name: str) -> Optional[Tour]:
        stmt = select(Tour).where(Tour.name == name)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_tour_by_id_or_raise(self, tour_id: UUID) -> Tour:
        """
        Get tour by ID or raise NotFoundError.

        Args:
            tour_id: Tour ID to search for

        Returns:
            Tour entity

        Raises:
            NotFoundError: If tour not found
        """
        tour = await self.get_tour_by_id(tour_id)
        if not tour:
            logger.warning(
                "Tour not found",
                extra={"tour_id": str(tour_id)}
            )
            raise NotFoundError(
                resource_type="tour",
                resource_id=str(tour_id)
            )
        return tour

    async def _ensure_name_available(self, name: str, tour_id: Optional[UUID] = None) -> None:
        existing_tour = await self.get_tour_by_name(name)
        if existing_tour and existing_tour.id != tour_id:
            logger.warning(
                "Tour name already taken",
                extra={"tour_name": name, "existing_tour_id": str(existing_tour.id)}
            )
            raise ConflictError(
                detail=f"A tour named '{name}' already exists",
                conflicting_resource={"id": str(existing_tour.id), "name": existing_tour.name}
            )

    async def _commit(self, tour: Tour) -> None:
        name = tour.name
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.error(
                "Tour write failed due to integrity constraint",
                extra={"tour_name": name, "error": str(e.orig)}
            )
            raise ConflictError(detail="Tour write failed due to constraint violation") from e
        await self.db.refresh(tour)

    async def create_tour(self, request: CreateTourRequest) -> Tour:
        """
        Create a new tour.

        Args:
            request: Tour creation request

        Returns:
            Created tour entity

        Raises:
            ConflictError: If a tour with the same name already exists
        """
        await self._ensure_name_available(request.name)

        fields = request.model_dump(exclude={"start_dates"})
        tour = Tour(
            **fields,
            slug=slugify(request.name),
            start_dates=_start_date_rows(request.start_dates),
        )

        self.db.add(tour)
        await self._commit(tour)

        metrics_collector.record_tour_created(tour.difficulty)
        logger.info(
            "Tour created successfully",
            extra={"tour_id": str(tour.id), "tour_name": tour.name}
        )
        return tour

    async def update_tour(self, tour_id: UUID, request: UpdateTourRequest) -> Tour:
        """
        Apply a partial update, re-checking rules that span several fields.

        Raises:
            NotFoundError: If tour not found
            ConflictError: If the new name is taken by another tour
            ValidationError: If the resulting discount is not below the price
        """
        tour = await self.get_tour_by_id_or_raise(tour_id)
        changes = request.model_dump(exclude_unset=True)
        updated_fields = sorted(changes)

        price = changes.get("price", tour.price)
        discount = changes.get("price_discount", tour.price_discount)
        if discount is not None and discount >= price:
            raise ValidationError(
                detail="Invalid input data",
                violations=[{
                    "path": "priceDiscount",
                    "message": f"Discount price ({discount}) should be below regular price",
                }],
            )
        if "name" in changes:
            await self._ensure_name_available(changes["name"], tour_id=tour.id)
            tour.slug = slugify(changes["name"])

        start_dates = changes.pop("start_dates", None)
        for attr, value in changes.items():
            setattr(tour, attr, value)
        if start_dates is not None:
            tour.start_dates = _start_date_rows(start_dates)

        await self._commit(tour)

        metrics_collector.record_tour_updated()
        logger.info(
            "Tour updated successfully",
            extra={"tour_id": str(tour.id), "fields": updated_fields}
        )
        return tour

    async def delete_tour(self, tour_id: UUID) -> None:
        """
        Delete a tour and its start dates.

        Raises:
            NotFoundError: If tour not found
        """
        tour = await self.get_tour_by_id_or_raise(tour_id)
        await self.db.delete(tour)
        await self.db.commit()

        metrics_collector.record_tour_deleted()
        logger.info("Tour deleted", extra={"tour_id": str(tour_id)})

    async def get_tour_stats(self) -> List[TourStats]:
        """
        Statistics per difficulty for highly rated tours.

        Only tours rated at least 4.5 are counted. Groups are keyed by the
        uppercased difficulty, ordered by average price, and the EASY group
        is dropped.
        """
        difficulty = func.upper(Tour.difficulty)
        avg_price = func.avg(Tour.price)
        stmt = (
            select(
                difficulty.label("difficulty"),
                func.count(Tour.id).label("num_tours"),
                func.sum(Tour.ratings_quantity).label("num_ratings"),
                func.avg(Tour.ratings_average).label("avg_rating"),
                avg_price.label("avg_price"),
                func.min(Tour.price).label("min_price"),
                func.max(Tour.price).label("max_price"),
            )
            .where(
                Tour.ratings_average >= STATS_MIN_RATING,
                Tour.secret_tour.is_(False),
            )
            .group_by(difficulty)
            .having(difficulty != STATS_EXCLUDED_DIFFICULTY)
            .order_by(avg_price.asc())
        )
        result = await self.db.execute(stmt)

        stats = [
            TourStats(
                difficulty=row.difficulty,
                num_tours=row.num_tours,
                num_ratings=int(row.num_ratings or 0),
                avg_rating=float(row.avg_rating),
                avg_price=float(row.avg_price),
                min_price=float(row.min_price),
                max_price=float(row.max_price),
            )
            for row in result
        ]
        metrics_collector.record_report("tour-stats")
        return stats

    async def get_monthly_plan(self, year: int) -> List[MonthlyPlanEntry]:
        """
        Count tour starts per month of ``year``.

        Every start date is its own row; rows inside the calendar year are
        grouped by month, ordered by number of starts (busiest first, then
        by month) and capped at twelve groups.

        Raises:
            ValidationError: If the year is outside the supported range
        """
        if not MIN_PLAN_YEAR <= year <= MAX_PLAN_YEAR:
            raise ValidationError(
                detail=f"Year must be between {MIN_PLAN_YEAR} and {MAX_PLAN_YEAR}",
                violations=[{"path": "year", "message": f"Got {year}"}],
            )

        window_start = datetime(year, 1, 1)
        window_end = datetime(year, 12, 31, 23, 59, 59, 999999)

        month = extract("month", TourStartDate.starts_at)
        num_starts = func.count(TourStartDate.id)
        stmt = (
            select(
                month.label("month"),
                num_starts.label("num_tours_start"),
                func.aggregate_strings(Tour.name, _NAME_SEPARATOR).label("tours"),
            )
            .join(Tour, Tour.id == TourStartDate.tour_id)
            .where(
                TourStartDate.starts_at >= window_start,
                TourStartDate.starts_at <= window_end,
                Tour.secret_tour.is_(False),
            )
            .group_by(month)
            .order_by(num_starts.desc(), month.asc())
            .limit(MONTHLY_PLAN_MAX_GROUPS)
        )
        result = await self.db.execute(stmt)

        plan = [
            MonthlyPlanEntry(
                month=int(row.month),
                num_tours_start=row.num_tours_start,
                tours=sorted(row.tours.split(_NAME_SEPARATOR)) if row.tours else [],
            )
            for row in result
        ]
        metrics_collector.record_report("monthly-plan")
        return plan


def _start_date_rows(start_dates: Sequence[datetime]) -> List[TourStartDate]:
    return [
        TourStartDate(position=position, starts_at=starts_at)
        for position, starts_at in enumerate(start_dates)
    ]

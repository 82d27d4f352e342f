"""Tour-related Pydantic schemas."""

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional

from fastapi.encoders import jsonable_encoder
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

Difficulty = Literal["easy", "medium", "difficult"]

# Public field name -> model attribute, in response order
TOUR_FIELDS: Dict[str, str] = {
    "id": "id",
    "name": "name",
    "slug": "slug",
    "duration": "duration",
    "maxGroupSize": "max_group_size",
    "difficulty": "difficulty",
    "ratingsAverage": "ratings_average",
    "ratingsQuantity": "ratings_quantity",
    "price": "price",
    "priceDiscount": "price_discount",
    "summary": "summary",
    "description": "description",
    "imageCover": "image_cover",
    "images": "images",
    "startDates": "start_dates",
    "secretTour": "secret_tour",
    "createdAt": "created_at",
    "version": "version",
}

# Left out of responses unless a projection asks for them
HIDDEN_TOUR_FIELDS = ("version",)


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


StartDate = Annotated[datetime, AfterValidator(_to_naive_utc)]


class _TourFields(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class CreateTourRequest(_TourFields):
    """Request schema for creating a tour."""

    name: str = Field(..., min_length=10, max_length=40, description="Unique tour name")
    duration: int = Field(..., ge=1, description="Duration in days")
    max_group_size: int = Field(..., ge=1, description="Maximum group size")
    difficulty: Difficulty = Field(..., description="Difficulty: easy, medium or difficult")
    ratings_average: float = Field(4.5, ge=1, le=5, description="Average rating")
    ratings_quantity: int = Field(0, ge=0, description="Number of ratings")
    price: float = Field(..., gt=0, description="Price")
    price_discount: Optional[float] = Field(None, ge=0, description="Discount, below price")
    summary: str = Field(..., min_length=1, description="Short summary")
    description: Optional[str] = Field(None, description="Long description")
    image_cover: str = Field(..., min_length=1, description="Cover image file name")
    images: List[str] = Field(default_factory=list, description="Image file names")
    start_dates: List[StartDate] = Field(default_factory=list, description="Scheduled start dates")
    secret_tour: bool = Field(False, description="Hidden from listings and reports")

    @model_validator(mode="after")
    def check_discount(self) -> "CreateTourRequest":
        if self.price_discount is not None and self.price_discount >= self.price:
            raise ValueError(
                f"Discount price ({self.price_discount}) should be below regular price"
            )
        return self


class UpdateTourRequest(_TourFields):
    """Request schema for a partial tour update; the same field rules apply."""

    name: Optional[str] = Field(None, min_length=10, max_length=40)
    duration: Optional[int] = Field(None, ge=1)
    max_group_size: Optional[int] = Field(None, ge=1)
    difficulty: Optional[Difficulty] = None
    ratings_average: Optional[float] = Field(None, ge=1, le=5)
    ratings_quantity: Optional[int] = Field(None, ge=0)
    price: Optional[float] = Field(None, gt=0)
    price_discount: Optional[float] = Field(None, ge=0)
    summary: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    image_cover: Optional[str] = Field(None, min_length=1)
    images: Optional[List[str]] = None
    start_dates: Optional[List[StartDate]] = None
    secret_tour: Optional[bool] = None

    @model_validator(mode="after")
    def reject_null_required(self) -> "UpdateTourRequest":
        nullable = {"price_discount", "description"}
        for name in self.model_fields_set - nullable:
            if getattr(self, name) is None:
                raise ValueError(f"Field '{to_camel(name)}' cannot be null")
        return self


class TourStats(BaseModel):
    """One difficulty group of the tour statistics report."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    difficulty: str
    num_tours: int
    num_ratings: int
    avg_rating: float
    avg_price: float
    min_price: float
    max_price: float


class MonthlyPlanEntry(BaseModel):
    """Tour starts within one calendar month."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    month: int = Field(..., ge=1, le=12)
    num_tours_start: int
    tours: List[str]


def tour_to_dict(tour: Any, fields: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    """
    Serialize a Tour model to its public JSON shape.

    Only the named public fields are read, so partially loaded rows are safe.
    """
    if fields is None:
        fields = [name for name in TOUR_FIELDS if name not in HIDDEN_TOUR_FIELDS]

    data: Dict[str, Any] = {}
    for name in fields:
        value = getattr(tour, TOUR_FIELDS[name])
        if name == "startDates":
            value = [start.starts_at for start in value]
        data[name] = value
    return jsonable_encoder(data)

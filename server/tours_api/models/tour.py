"""Tour model definition."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base


class Tour(Base):
    """Tour entity representing a tour offering."""

    __tablename__ = "tours"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Tour information
    name: Mapped[str] = mapped_column(String(40), nullable=False, unique=True, index=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)
    max_group_size: Mapped[int] = mapped_column(Integer, nullable=False)
    difficulty: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_cover: Mapped[str] = mapped_column(String(255), nullable=False)
    images: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    secret_tour: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Ratings and pricing
    ratings_average: Mapped[float] = mapped_column(Float, nullable=False, default=4.5)
    ratings_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    price: Mapped[float] = mapped_column(Float, nullable=False, index=True)
    price_discount: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    # Optimistic locking counter, hidden from default projections
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Relationships
    start_dates: Mapped[list["TourStartDate"]] = relationship(
        "TourStartDate",
        back_populates="tour",
        cascade="all, delete-orphan",
        order_by="TourStartDate.position",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Tour(id={self.id}, name='{self.name}', difficulty='{self.difficulty}')>"


class TourStartDate(Base):
    """A single scheduled start of a tour; one row per element of startDates."""

    __tablename__ = "tour_start_dates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tour_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tours.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    starts_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    tour: Mapped["Tour"] = relationship("Tour", back_populates="start_dates")

    def __repr__(self) -> str:
        return f"<TourStartDate(tour_id={self.tour_id}, starts_at={self.starts_at.isoformat()})>"

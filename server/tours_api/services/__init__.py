"""Service layer package."""

from .tour_service import TourService

__all__ = [
    "TourService",
]

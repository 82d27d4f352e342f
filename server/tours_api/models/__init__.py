"""Models module exporting all database models."""

from .tour import Tour, TourStartDate

__all__ = [
    "Tour",
    "TourStartDate",
]

"""TripChat - real-time trip chat backend."""

__version__ = "1.0.0"

"""Feature-based similarity between metadata catalog records."""

__version__ = "0.3.0"

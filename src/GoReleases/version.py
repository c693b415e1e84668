"""Distribution version for the release fetcher."""

__version__ = "0.1.0"

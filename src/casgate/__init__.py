"""casgate: content-addressed block storage with a tiered cache."""

__version__ = "0.1.0"

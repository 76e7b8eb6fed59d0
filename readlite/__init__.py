"""ReadLite - conversation and streaming engine for a reading assistant."""

__version__ = "0.3.0"

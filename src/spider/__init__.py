"""Concurrent web crawler that extracts structured records to CSV or JSON Lines."""

__version__ = "1.0.0"

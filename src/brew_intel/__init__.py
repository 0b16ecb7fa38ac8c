"""Brew Intel - brewery content processing pipeline."""

__version__ = "0.1.0"

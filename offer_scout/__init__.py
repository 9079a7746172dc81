"""Marketplace offer crawler and style-match evaluation pipeline."""

__version__ = "0.1.0"

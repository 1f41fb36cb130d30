"""Promo video scene pipeline: multi-scene generation, compositing and publishing."""

__version__ = "0.1.0"

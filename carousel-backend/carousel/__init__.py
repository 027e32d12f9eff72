"""Carousel slide generation package.

This package downloads background images, lays out title/subtitle text as
an SVG overlay, composites the two into PNG slides and optionally hands the
results to a storage backend. ``batch.run_batch`` is the entry point used by
the API; see individual modules for details.
"""

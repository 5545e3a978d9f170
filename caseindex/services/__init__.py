"""Acquisition pipeline: limiter, extraction, normalization, routing, refresh."""

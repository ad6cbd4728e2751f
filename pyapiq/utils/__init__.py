"""Utility modules for the apiq application.

This package contains the cache-and-retry fetch layer (key derivation, the
on-disk store, the retrying HTTP fetcher and the `CacheManager` facade) and
small formatting helpers.
"""

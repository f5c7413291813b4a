"""
Backend package for the B2B catalog admin API.

This package provides a FastAPI application with storage and database
abstractions for managing categories, products, leads, banners and the
dashboard users that maintain them.
"""

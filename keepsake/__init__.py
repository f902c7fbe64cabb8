"""
Backend package for the keepsake relationship journal.

This package provides a FastAPI application for diaries, photo albums,
countdowns and backup export, with storage and database abstractions so the
same code runs against SQLite, Postgres, local disk or S3-compatible storage.
"""

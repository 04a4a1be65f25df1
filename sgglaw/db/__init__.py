# sgglaw/db/__init__.py
"""Postgres: pool de conexoes e migrations."""

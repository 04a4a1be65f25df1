# sgglaw/storage/__init__.py
"""Repositorios de documentos/cursores e store de artefatos em disco."""

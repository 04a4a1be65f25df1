# sgglaw/fetch/__init__.py
"""Probe de existencia, scan por cursor e download de PDFs."""

# sgglaw/ai/__init__.py
"""Fallback de extracao via modelos (Ollama local, Groq cloud) com chunking."""

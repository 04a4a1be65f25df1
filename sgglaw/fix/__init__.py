# sgglaw/fix/__init__.py
"""Deteccao de issues e correcao por rewind de status."""

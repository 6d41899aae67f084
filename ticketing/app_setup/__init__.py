"""Étapes de construction de l'application FastAPI."""

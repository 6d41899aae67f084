"""Utilitaires transverses (rate limiting)."""

"""Accès aux clients d'infrastructure (Supabase)."""

"""
Service de billetterie des fonctions maçonniques.

Résolution des prix (billets et forfaits), construction des commandes,
contrôle des stocks, orchestration du paiement Stripe et finalisation
idempotente des inscriptions (Supabase).
"""

"""
Module 'registrations' (feature-first): schémas d'entrée, persistance,
finalisation idempotente et numéros de confirmation.
"""

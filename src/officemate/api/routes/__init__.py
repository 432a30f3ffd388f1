"""Unauthenticated routes."""

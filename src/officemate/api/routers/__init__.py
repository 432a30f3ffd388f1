"""Authenticated API routers."""

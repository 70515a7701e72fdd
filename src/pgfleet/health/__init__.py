"""Periodic health checks and their HTTP endpoints."""

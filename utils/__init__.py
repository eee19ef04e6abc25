"""Shared helpers for rendering and geodesy."""

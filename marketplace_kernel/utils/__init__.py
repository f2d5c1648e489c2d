"""Utility helpers for the marketplace kernel."""

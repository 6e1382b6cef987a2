"""Utility helpers for gator."""

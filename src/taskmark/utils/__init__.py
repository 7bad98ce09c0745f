"""Shared helpers for taskmark."""

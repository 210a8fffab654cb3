"""Bundled sample template library."""

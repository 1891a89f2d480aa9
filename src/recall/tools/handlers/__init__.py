"""Concrete tool handlers; imported automatically by :mod:`recall.tools`."""

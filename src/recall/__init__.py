"""Scoped chronological and semantic retrieval over stored chat records."""

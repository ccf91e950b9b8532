"""Listing-scoped buyer/seller messaging: models, presence, typing and threads."""

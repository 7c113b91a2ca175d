"""Catalog search, LLM search intent and the Mily chat assistant."""

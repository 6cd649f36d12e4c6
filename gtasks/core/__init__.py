"""Credential lifecycle core."""

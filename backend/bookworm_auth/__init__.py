"""Bookworm identity and session lifecycle service."""

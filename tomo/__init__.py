"""Tomo: focus sessions and reflection journal API."""

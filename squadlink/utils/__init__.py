"""Logging, settings persistence and key helpers."""

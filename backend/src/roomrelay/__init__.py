"""Roomrelay: in-memory room, chat and call coordination engine."""

"""Chatcore: real-time messaging core (direct messages, rooms, presence)."""

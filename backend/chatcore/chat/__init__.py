"""Real-time chat: push sessions, rooms, messages, presence and typing."""

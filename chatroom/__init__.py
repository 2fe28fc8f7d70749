"""Chat room backend: participants, messages and inactivity eviction."""

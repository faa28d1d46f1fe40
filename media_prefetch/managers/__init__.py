"""Background managers around the prefetch session."""

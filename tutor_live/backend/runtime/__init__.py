"""Runtime wiring and platform capabilities."""

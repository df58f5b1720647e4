"""Core data model, events and metrics."""

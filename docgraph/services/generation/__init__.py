"""Answer generation services."""

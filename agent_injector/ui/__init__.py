"""Interactive menu."""

"""Process inspection, classification and restart engine."""

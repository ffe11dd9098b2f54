"""Output formatters and handlers."""

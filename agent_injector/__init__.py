"""Java agent auto-injection by command line rewrite and restart."""

__version__ = '1.0.0'

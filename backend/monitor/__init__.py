"""Change detection over successive live-feed polls."""

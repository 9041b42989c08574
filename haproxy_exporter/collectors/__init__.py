"""HAProxy statistics scrape pipeline."""

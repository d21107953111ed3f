"""Risk scoring, pattern correlation, attack planning and reporting."""

"""practice/ -- Per-user conversation practice settings."""

"""SQLite persistence for the command bus."""

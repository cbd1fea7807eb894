"""Command execution: executor, bus facade and deferred task worker."""

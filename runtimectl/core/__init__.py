"""Core domain: models, persistence, runtime services."""

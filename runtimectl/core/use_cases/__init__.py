"""Use cases — read-only views composed from the runtime registry."""

"""Persistence: version store, atomic state file, audit ledger."""

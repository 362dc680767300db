"""Reliability primitives."""

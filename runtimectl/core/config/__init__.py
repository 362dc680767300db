"""Configuration loading and filesystem layout."""

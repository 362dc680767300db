"""runtimectl — manage locally installed runtime versions (PHP, Node.js)."""

__version__ = "0.1.0"

"""
Core Infrastructure for narration-ms.

    - config.py: Configuration loading and validation
    - logging/: Structured logging with numeric levels
    - metrics.py: Prometheus metrics collection
"""

"""Quota store adapters.

The rate limiter and usage statistics only see the small get/put contract
defined in ``base``; backends differ in where the data lives (process memory
or a shared Redis) but offer the same guarantees: single-key reads and
unconditional writes with an optional time-to-live, nothing atomic across
operations.
"""

"""
cwlogs-stream test suite.

This package contains:
- unit/: Unit tests (no external services)
- integration/: Delivery engine and forwarder against the in-memory service
"""

"""
cfgtree Test Suite.

This package contains:
- unit/: Unit tests (remote services replaced by fakes and mock transports)
"""

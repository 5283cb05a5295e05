"""
Core utilities shared across the TheraWay backend.

This package hosts configuration, logging, password hashing and the signed
session-token codec. Services depend on these primitives instead of reading
the environment or importing crypto libraries directly.
"""

"""
High-level use cases for the TheraWay backend.

Each service module orchestrates repositories/adapters to implement business
rules (authenticate a request, decide access, move an account through
moderation, record its history).

Routers (FastAPI endpoints) should call these services instead of decoding
tokens or touching the database directly.
"""

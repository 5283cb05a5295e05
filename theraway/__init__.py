"""TheraWay marketplace backend: session auth, access policy and account moderation."""

__version__ = "0.1.0"

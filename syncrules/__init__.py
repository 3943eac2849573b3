"""syncrules — folder governance for multi-tenant rule projects."""

__version__ = "0.1.0"

"""Studio API: multi-tenant fitness studio management backend."""

__version__ = "1.0.0"

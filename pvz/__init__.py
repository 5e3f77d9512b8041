"""Order pickup point core: order rules, packaging, order file import, password hashing and audit logging."""

__version__ = "0.1.0"

__all__ = ["models", "packaging", "orderfile", "records", "service", "audit", "admin"]
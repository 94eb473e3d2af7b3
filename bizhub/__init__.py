"""BizHub Business Suite: multi-tenant business API with tenant-scoped access control."""

__version__ = "1.0.0"

"""content-lifecycle - scheduled publication and workflow stage management."""

__version__ = "0.1.0"

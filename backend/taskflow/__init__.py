"""TaskFlow: hierarchical task management with time tracking."""

__version__ = "0.1.0"

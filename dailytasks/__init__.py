"""dailytasks: daily to-do list backend."""

__version__ = "0.1.0"

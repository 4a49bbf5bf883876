"""credstore — inspect and manage harvested credentials per workspace."""

__version__ = "0.1.0"

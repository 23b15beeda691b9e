"""Route-aware scheduling of property showings for a travelling agent."""

__version__ = "0.1.0"

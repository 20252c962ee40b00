"""Service modules for the NDC package recommender."""

__all__ = ["recommender"]

"""Social2RSS: turns recent social media activity into a merged RSS feed."""

__version__ = "1.0.0"

"""
worldgen - LLM-driven content generation for chapter-based adventure worlds.
"""

__version__ = "0.1.0"

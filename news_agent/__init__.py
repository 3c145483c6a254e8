"""
News Article Agent

Scrapes news articles, normalizes them with an LLM, stores their embeddings
in a vector index, and answers queries with cited sources.
"""

__version__ = "0.1.0"

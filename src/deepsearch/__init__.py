"""DeepSearch chat backend: agentic web-search loop with streamed responses."""

__version__ = "1.0.0"

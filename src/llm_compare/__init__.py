"""Stream one prompt to several LLM backends and compare the answers side by side."""

__version__ = "0.1.0"

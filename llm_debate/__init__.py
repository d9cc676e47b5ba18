"""Two language models debating a topic, one turn at a time."""

__version__ = "0.1.0"

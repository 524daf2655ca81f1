"""topicwatch - supervised per-topic background workers."""

__version__ = "0.1.0"

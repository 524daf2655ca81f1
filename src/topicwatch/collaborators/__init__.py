"""Bundled collaborator adapters.

Reference them from the topics file as ``"module:attribute"`` factories, e.g.
``"topicwatch.collaborators.jsonl:JsonlWorkSource"``.
"""

from .jsonl import JsonlWorkSource
from .keywords import KeywordDecision
from .webhook import WebhookAction, WebhookNotifier

__all__ = [
    "JsonlWorkSource",
    "KeywordDecision",
    "WebhookAction",
    "WebhookNotifier",
]

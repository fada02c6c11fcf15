"""
Conversation Engine

Client-side engine that assembles encryption-aware activities for a
conversation service and submits them.
"""

__version__ = "0.1.0"

"""
Flowbot: a WhatsApp workflow automation engine.

This package interprets vendor-authored conversational graphs and drives
automated replies for each conversation, one inbound message at a time.
"""

__version__ = "0.1.0"

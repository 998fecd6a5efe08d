"""
NARE - Linux administration over chat

Lets the owner of a Linux machine manage it from Telegram by talking to an
AI assistant that can run shell commands, gated by a command safety
classifier, persisted permissions and interactive confirmation.
"""

__version__ = "0.1.0"
__author__ = "NARE Team"

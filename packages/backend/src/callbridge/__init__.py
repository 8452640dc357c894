"""callbridge — voice, SMS and WhatsApp bridge for coding agents.

Turns webhook-delivered calls and messages into synchronous-looking
tool calls, and supervises the worker processes (coding agents) that
carry out what the user asked for over the phone or in chat.
"""

__version__ = "0.1.0"

"""Inbound dispatch — decides who gets each message the user sends.

Learn: Every inbound user message (speech on a call, an SMS, a WhatsApp
message) goes through one policy, applied in strict order:
1. something blocked on "the next message on this channel" → hand it over
2. an open question on this conversation → answer it
3. a worker already running for this conversation → drop it
4. otherwise → the always-on chat queue, or a fresh one-shot worker

Synchronous waits always win over asynchronous queuing, and a conversation
never has two workers at once.
"""

from callbridge.dispatcher.inbound import DispatchOutcome, DispatchStats, InboundDispatcher

__all__ = ["DispatchOutcome", "DispatchStats", "InboundDispatcher"]

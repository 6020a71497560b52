"""
Services package for outbound payloads.
"""

from .callback import CallbackPayload, build_callback_payload, generate_agent_notes

__all__ = [
    "CallbackPayload",
    "build_callback_payload",
    "generate_agent_notes",
]

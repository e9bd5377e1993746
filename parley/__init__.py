"""
Parley - multi-surface chat assistant backed by an external LLM provider.

This package provides the conversation-turn engine: credential and model
selection under rotating quotas, context assembly from persona, memory and
knowledge, a bounded tool-calling protocol, and an auditable trail of every
turn.
"""

__version__ = "0.1.0"

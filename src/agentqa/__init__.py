"""agentqa - oracle engine for conversational agent tests."""

__version__ = "0.3.0"

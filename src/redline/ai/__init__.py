"""AI client, chat backends, prompts and the agent loop."""

from .client import AIClient, ClientSettings

__all__ = ["AIClient", "ClientSettings"]

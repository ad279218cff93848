from .client import CompletionClient

__all__ = ["CompletionClient"]

"""Abstract base class for text-generation model providers.

The pipeline consumes the generation model as ``generate(messages) -> text``.
``complete(system_prompt, user_prompt)`` is the two-message shortcut used by
the summary service.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class ChatMessage:
    """One message in a generation request.

    Attributes
    ----------
    role:
        ``"system"``, ``"user"`` or ``"assistant"``.
    content:
        Message text.
    """

    role: str
    content: str


# Concrete implementation: OpenAILLMProvider (workspace_rag/providers/llm/)
class ILLMProvider(ABC):
    """Contract for the text-generation model."""

    @abstractmethod
    async def generate(
        self,
        messages: list[ChatMessage],
        temperature: float = 0.7,
        max_tokens: int = 800,
    ) -> str:
        """Generate a reply for an ordered list of chat messages.

        Parameters
        ----------
        messages:
            System, history and user messages in order.
        temperature:
            Sampling temperature (0.0 = deterministic).
        max_tokens:
            Upper bound on the number of tokens in the response.

        Returns
        -------
        str
            The model's text response.

        Raises
        ------
        workspace_rag.utils.errors.LLMError
            If the API call fails or returns an empty response.
        """

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 400,
    ) -> str:
        """Two-message shortcut over :meth:`generate`."""
        return await self.generate(
            [ChatMessage("system", system_prompt), ChatMessage("user", user_prompt)],
            temperature=temperature,
            max_tokens=max_tokens,
        )

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if credentials are present (no network call)."""

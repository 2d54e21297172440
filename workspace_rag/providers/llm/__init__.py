"""LLM provider adapters.

``OpenAILLMProvider`` implements ILLMProvider against any OpenAI-compatible
chat completions endpoint.  ``workspace_rag.main`` builds it when
``OPENAI_API_KEY`` is configured.
"""

from workspace_rag.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["OpenAILLMProvider"]

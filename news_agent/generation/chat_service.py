"""
Ollama Chat Service

Single-turn text generation through LangChain's ChatOllama.
"""

import logging
from typing import Any, Optional

from langchain_ollama import ChatOllama

from ..errors import ModelInvocationError

logger = logging.getLogger(__name__)


class OllamaChatService:
    """Sends one prompt to a chat model and returns the reply text."""

    def __init__(
        self,
        model: str = "llama3.1:latest",
        temperature: float = 0.3,
        max_tokens: int = 2048,
        base_url: str = "http://localhost:11434",
        llm: Optional[Any] = None
    ):
        """
        Initialize the chat service.

        Args:
            model: Ollama model name for generation
            temperature: LLM temperature (0.0-1.0)
            max_tokens: Maximum tokens in generated reply
            base_url: Base URL for Ollama service
            llm: Pre-built LangChain chat model (overrides the settings above)
        """
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

        self.llm = llm or ChatOllama(
            model=model,
            temperature=temperature,
            base_url=base_url,
            num_predict=max_tokens
        )

    def generate(self, prompt: str) -> str:
        """
        Generate a reply to a single prompt.

        Args:
            prompt: Complete prompt text

        Returns:
            Generated reply text

        Raises:
            ModelInvocationError: If the LLM call fails
        """
        try:
            response = self.llm.invoke(prompt)
        except Exception as e:
            logger.error(f"Error generating content with {self.model}: {e}")
            raise ModelInvocationError(f"Error generating answer with LLM: {str(e)}") from e

        # Extract content from response
        if hasattr(response, 'content'):
            content = response.content
        else:
            content = str(response)

        if isinstance(content, list):
            content = ''.join(
                part.get('text', '') if isinstance(part, dict) else str(part)
                for part in content
            )
        return content

"""
Inkwell Backend — Abstract LLM Service Interface
==================================================

What:  Abstract base class defining the contract for the AI gateway.
How:   Concrete implementations inherit from LLMService and implement
       extract_tags(), answer() and health_check().
Who:   Called by NoteAIService during paid AI actions.
When:  After ownership check and credit reservation, before chat persistence.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Sequence


class LLMService(ABC):
    """
    Abstract interface for note-grounded AI features.

    Contract:
        - One attempt per call; no internal retries
        - Provider failures surface as LLMServiceError carrying the upstream
          HTTP status, and a 429 as UpstreamRateLimitedError
        - Inputs over budget are truncated, never rejected

    Implementations:
        - CompletionService: remote chat-completion HTTP API (httpx)
    """

    @abstractmethod
    async def extract_tags(self, text: str) -> List[str]:
        """
        Extract short keywords from note text.

        Returns:
            Ordered keywords of one or two words each. May be empty.

        Raises:
            LLMServiceError / UpstreamRateLimitedError
        """
        ...

    @abstractmethod
    async def answer(
        self,
        note_text: str,
        question: str,
        history: Sequence[Dict[str, str]] = (),
    ) -> str:
        """
        Answer `question` using only `note_text` as the knowledge source.

        Args:
            note_text: The note content (truncated to the chat budget).
            question:  The new user message.
            history:   Prior turns as {"role", "content"} dicts, oldest first.

        Returns:
            The trimmed model response.

        Raises:
            LLMServiceError / UpstreamRateLimitedError
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Lightweight readiness check that does not spend provider quota."""
        ...

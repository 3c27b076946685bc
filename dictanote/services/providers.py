"""
LLM provider abstractions for transcript assistance.

Provides a unified interface over chat-completion APIs (OpenAI, Claude) so
the correction, alternative and summary services can send a system prompt
plus user text and get raw response text back with consistent error handling.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List, Union
from dataclasses import dataclass, field
import os
import time
import asyncio
import json
import logging

import openai
from anthropic import Anthropic

logger = logging.getLogger(__name__)


@dataclass
class CompletionRequest:
    """A single prompt sent to a provider."""
    system_prompt: str
    user_content: str
    temperature: float = 0.3
    max_tokens: Optional[int] = None
    json_mode: bool = True


@dataclass
class CompletionResult:
    """Result from a completion call."""
    text: str
    provider: str
    processing_time: float
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class CompletionProvider(ABC):
    """Abstract base class for completion providers."""

    def __init__(self, name: str):
        self.name = name
        self.usage_stats = {
            'requests': 0,
            'successful': 0,
            'failed': 0,
            'total_tokens': 0
        }

    @abstractmethod
    async def complete(self, request: CompletionRequest) -> CompletionResult:
        """Run one completion. Never raises; failures set ``error``."""
        pass

    @abstractmethod
    def get_provider_name(self) -> str:
        """Get the display name of this provider."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is available (API key, package)."""
        pass

    def update_usage_stats(self, success: bool, tokens: int = 0):
        """Update usage statistics."""
        self.usage_stats['requests'] += 1
        if success:
            self.usage_stats['successful'] += 1
        else:
            self.usage_stats['failed'] += 1
        self.usage_stats['total_tokens'] += tokens

    def get_usage_stats(self) -> Dict[str, Any]:
        """Get current usage statistics."""
        return self.usage_stats.copy()

    def _failure(self, message: str, start_time: float) -> CompletionResult:
        self.update_usage_stats(success=False)
        return CompletionResult(
            text="",
            provider=self.name,
            processing_time=time.time() - start_time,
            error=message
        )


class OpenAIProvider(CompletionProvider):
    """OpenAI chat-completions provider."""

    def __init__(
        self,
        model: str = "gpt-4o",
        api_key: Optional[str] = None,
        timeout: float = 60.0
    ):
        super().__init__("openai")
        self.model = model
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.timeout = timeout
        self._client: Optional[openai.OpenAI] = None

    def get_provider_name(self) -> str:
        return "OpenAI"

    def is_available(self) -> bool:
        return bool(self.api_key)

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        start_time = time.time()

        if not self.is_available():
            return self._failure("OpenAI not available (missing API key)", start_time)

        try:
            # The SDK client is synchronous; keep the event loop free
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, self._sync_complete, request, start_time)
        except Exception as e:
            logger.error(f"OpenAI completion failed: {e}")
            return self._failure(str(e), start_time)

    def _sync_complete(self, request: CompletionRequest, start_time: float) -> CompletionResult:
        if not self._client:
            self._client = openai.OpenAI(api_key=self.api_key, timeout=self.timeout)

        params: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_content}
            ],
            "temperature": request.temperature,
        }
        if request.max_tokens:
            params["max_tokens"] = request.max_tokens
        if request.json_mode:
            params["response_format"] = {"type": "json_object"}

        response = self._client.chat.completions.create(**params)

        content = response.choices[0].message.content
        if not content:
            return self._failure("No content received from AI", start_time)

        tokens = response.usage.total_tokens if response.usage else 0
        self.update_usage_stats(success=True, tokens=tokens)

        return CompletionResult(
            text=content.strip(),
            provider=self.name,
            processing_time=time.time() - start_time,
            metadata={"model": self.model, "tokens_used": tokens}
        )


class ClaudeProvider(CompletionProvider):
    """Anthropic Claude messages provider."""

    def __init__(
        self,
        model: str = "claude-3-5-haiku-latest",
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        default_max_tokens: int = 4000
    ):
        super().__init__("claude")
        self.model = model
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        self.timeout = timeout
        self.default_max_tokens = default_max_tokens
        self._client: Optional[Anthropic] = None

    def get_provider_name(self) -> str:
        return "Claude"

    def is_available(self) -> bool:
        return bool(self.api_key)

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        start_time = time.time()

        if not self.is_available():
            return self._failure("Claude not available (missing API key)", start_time)

        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, self._sync_complete, request, start_time)
        except Exception as e:
            logger.error(f"Claude completion failed: {e}")
            return self._failure(str(e), start_time)

    def _sync_complete(self, request: CompletionRequest, start_time: float) -> CompletionResult:
        if not self._client:
            self._client = Anthropic(api_key=self.api_key, timeout=self.timeout)

        system_prompt = request.system_prompt
        if request.json_mode:
            # Claude has no JSON response mode; ask for it in the prompt
            system_prompt += "\n\nRespond with a single JSON object and nothing else."

        response = self._client.messages.create(
            model=self.model,
            max_tokens=request.max_tokens or self.default_max_tokens,
            temperature=request.temperature,
            system=system_prompt,
            messages=[
                {"role": "user", "content": request.user_content}
            ]
        )

        content = response.content[0].text if response.content else ""
        if not content:
            return self._failure("No content received from AI", start_time)

        tokens = response.usage.input_tokens + response.usage.output_tokens if response.usage else 0
        self.update_usage_stats(success=True, tokens=tokens)

        return CompletionResult(
            text=content.strip(),
            provider=self.name,
            processing_time=time.time() - start_time,
            metadata={"model": self.model, "tokens_used": tokens}
        )


class MockProvider(CompletionProvider):
    """
    Mock provider for testing.

    Returns canned responses in order (the last one repeats). Dicts and lists
    are serialized to JSON so tests can write payloads naturally.
    """

    def __init__(
        self,
        responses: Optional[List[Union[str, Dict[str, Any], List[Any]]]] = None,
        should_fail: bool = False,
        delay: float = 0.0
    ):
        super().__init__("mock")
        self.responses = list(responses or ["{}"])
        self.should_fail = should_fail
        self.delay = delay
        self.requests: List[CompletionRequest] = []

    def get_provider_name(self) -> str:
        return "Mock"

    def is_available(self) -> bool:
        return True

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        start_time = time.time()
        self.requests.append(request)

        if self.delay > 0:
            await asyncio.sleep(self.delay)

        if self.should_fail:
            return self._failure("Mock provider configured to fail", start_time)

        index = min(len(self.requests), len(self.responses)) - 1
        response = self.responses[index]
        text = response if isinstance(response, str) else json.dumps(response)

        self.update_usage_stats(success=True)
        return CompletionResult(
            text=text,
            provider=self.name,
            processing_time=time.time() - start_time,
            metadata={"mock_version": "1.0"}
        )


# Smaller models for per-sentence alternatives
SUGGESTION_MODELS = {
    "openai": "gpt-4o-mini",
    "claude": "claude-3-5-haiku-latest",
}


def create_provider(name: str = "openai", model: Optional[str] = None) -> CompletionProvider:
    """Create a provider by short name ('openai' or 'claude')."""
    if name == "openai":
        return OpenAIProvider(model=model) if model else OpenAIProvider()
    if name == "claude":
        return ClaudeProvider(model=model) if model else ClaudeProvider()
    raise ValueError(f"Unknown provider: {name}")

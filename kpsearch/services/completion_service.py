"""
OpenAI chat-completion wrapper shared by the query parser and the advisory generator
"""
import json
import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import openai

from kpsearch.core.config import settings

logger = logging.getLogger(__name__)


class CompletionError(Exception):
    """Raised when the completion service cannot produce a usable answer."""

    def __init__(self, message: str, error_type: str = "unknown"):
        super().__init__(message)
        self.error_type = error_type


class CompletionService:
    """Thin async client around the chat-completions endpoint"""

    def __init__(self, client: Optional[openai.AsyncOpenAI] = None, model: Optional[str] = None):
        self.model = model or settings.openai_model
        self._client = client
        self.api_usage_stats = {
            "total_requests": 0,
            "successful_requests": 0,
            "failed_requests": 0,
            "total_tokens": 0,
            "last_reset": datetime.now(),
        }

    @property
    def client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            if not settings.openai_api_key:
                raise CompletionError("OpenAI API key not configured", error_type="authentication")
            self._client = openai.AsyncOpenAI(
                api_key=settings.openai_api_key,
                timeout=settings.openai_timeout,
                max_retries=settings.openai_max_retries,
            )
        return self._client

    async def _call(
        self,
        messages: List[Dict[str, str]],
        temperature: float,
        max_tokens: int,
        json_mode: bool,
    ) -> str:
        self.api_usage_stats["total_requests"] += 1
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        start_time = time.time()
        try:
            response = await self.client.chat.completions.create(**kwargs)
        except CompletionError:
            self.api_usage_stats["failed_requests"] += 1
            raise
        except openai.APITimeoutError as e:
            self.api_usage_stats["failed_requests"] += 1
            logger.warning(f"OpenAI request timed out after {time.time() - start_time:.2f}s")
            raise CompletionError(str(e), error_type="timeout") from e
        except openai.RateLimitError as e:
            self.api_usage_stats["failed_requests"] += 1
            logger.warning(f"OpenAI rate limit exceeded: {e}")
            raise CompletionError(str(e), error_type="rate_limit") from e
        except openai.AuthenticationError as e:
            self.api_usage_stats["failed_requests"] += 1
            logger.error(f"OpenAI authentication failed: {e}")
            raise CompletionError(str(e), error_type="authentication") from e
        except openai.APIError as e:
            self.api_usage_stats["failed_requests"] += 1
            logger.error(f"OpenAI API error: {e}")
            raise CompletionError(str(e), error_type="api_error") from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            self.api_usage_stats["failed_requests"] += 1
            raise CompletionError("Completion returned an empty response", error_type="empty")

        self.api_usage_stats["successful_requests"] += 1
        usage = getattr(response, "usage", None)
        if usage is not None and getattr(usage, "total_tokens", None):
            self.api_usage_stats["total_tokens"] += usage.total_tokens

        logger.info(
            f"OpenAI call successful - Model: {self.model}, Response time: {time.time() - start_time:.2f}s, "
            f"Tokens: {usage.total_tokens if usage is not None else 'N/A'}"
        )
        return content

    async def complete_json(
        self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int
    ) -> Dict[str, Any]:
        """Run a JSON-mode completion and decode the object it returns."""
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        content = await self._call(messages, temperature, max_tokens, json_mode=True)
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse completion JSON: {e}")
            raise CompletionError(f"Malformed JSON from completion: {e}", error_type="malformed") from e

        if not isinstance(data, dict):
            raise CompletionError("Completion JSON is not an object", error_type="malformed")
        return data

    async def complete_text(
        self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int
    ) -> str:
        """Run a plain-text completion."""
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        content = await self._call(messages, temperature, max_tokens, json_mode=False)
        return content.strip()

    def get_usage_stats(self) -> Dict[str, Any]:
        """Get API usage statistics"""
        return {
            **self.api_usage_stats,
            "success_rate": (
                self.api_usage_stats["successful_requests"] / max(self.api_usage_stats["total_requests"], 1) * 100
            ),
        }

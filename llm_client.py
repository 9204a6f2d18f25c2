"""
LLM client for narrative generation against an OpenAI-compatible endpoint (DeepSeek by default).

Each call is bounded by a timeout and retried a fixed number of times with a
fixed backoff. Failures surface as GenerationFailure subclasses; callers are
expected to fall back to the deterministic templates.
"""

import json
import logging
import time
from dataclasses import dataclass

import openai
from openai import OpenAI

from config import Settings
from errors import GenerationFailure, GenerationTimeout, MalformedResponse, Unauthorized

logger = logging.getLogger(__name__)

TEMPERATURE = 0.3
MAX_TOKENS = 1024


@dataclass
class LLMUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    request_count: int = 0


class NarrativeClient:
    def __init__(self, settings: Settings, client: OpenAI | None = None, sleep=time.sleep):
        self.settings = settings
        self.usage = LLMUsage()
        self._client = client
        self._sleep = sleep

    @property
    def available(self) -> bool:
        return self._client is not None or self.settings.has_llm_credential

    def _openai(self) -> OpenAI:
        if self._client is None:
            if not self.settings.has_llm_credential:
                raise Unauthorized("DEEPSEEK_API_KEY not found. Add it to .env (see .env.example).")
            self._client = OpenAI(
                api_key=self.settings.llm_api_key,
                base_url=self.settings.llm_base_url,
                timeout=self.settings.llm_timeout_seconds,
                max_retries=0,
            )
        return self._client

    def _complete_once(self, system_prompt: str, user_prompt: str, json_mode: bool) -> str:
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            response = self._openai().chat.completions.create(
                model=self.settings.llm_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=TEMPERATURE,
                max_tokens=MAX_TOKENS,
                **kwargs,
            )
        except openai.APITimeoutError as e:
            raise GenerationTimeout(f"Narrative service timed out after {self.settings.llm_timeout_seconds}s") from e
        except openai.AuthenticationError as e:
            raise Unauthorized(f"Narrative service rejected the credential: {e}") from e
        except openai.APIError as e:
            raise GenerationFailure(f"API error: {e}") from e

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message or not choice.message.content:
            raise MalformedResponse("Empty response from API")

        if response.usage:
            self.usage.prompt_tokens += response.usage.prompt_tokens or 0
            self.usage.completion_tokens += response.usage.completion_tokens or 0
            self.usage.total_tokens += response.usage.total_tokens or 0
        self.usage.request_count += 1

        return choice.message.content.strip()

    def complete(self, system_prompt: str, user_prompt: str, json_mode: bool = True) -> str:
        """Raw completion text. Unauthorized is not retried; every other failure is, up to llm_max_retries times."""
        attempts = max(0, self.settings.llm_max_retries) + 1
        for attempt in range(attempts):
            try:
                return self._complete_once(system_prompt, user_prompt, json_mode)
            except Unauthorized:
                raise
            except GenerationFailure as e:
                if attempt == attempts - 1:
                    raise
                logger.warning(
                    "Narrative call failed (attempt %d/%d): %s; retrying in %.1fs",
                    attempt + 1, attempts, e, self.settings.llm_retry_backoff_seconds,
                )
                self._sleep(self.settings.llm_retry_backoff_seconds)
        raise GenerationFailure("Narrative call failed after retries")

    def complete_json(self, system_prompt: str, user_prompt: str) -> dict:
        text = self.complete(system_prompt, user_prompt, json_mode=True)
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedResponse(f"Response is not valid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise MalformedResponse("Response JSON is not an object")
        return parsed

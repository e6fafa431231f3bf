from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Mapping

from openai import APIError, APIStatusError, OpenAI

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are ZenAdvisor, a safe, friendly financial coach.
Your job is to help everyday people take control of their money.
Rules:
- Only give general guidance, never regulated financial advice.
- Amounts in the snapshot are grouped by currency code. Never add or compare
  amounts in different currencies as if they were the same currency.
- Be encouraging but realistic.
- Always respond with valid JSON in this exact format:
  { "summary": "<one-paragraph overview>", "steps": ["<step 1>", "<step 2>", ...] }
- The summary should directly address the user's question.
- Provide 3-6 concrete, actionable steps.
- Do NOT include any text outside the JSON object."""

STATUS_MESSAGES = {
    401: "Invalid OpenAI API key. Please check your key in settings.",
    404: "AI model not available. Please check your OpenAI account.",
    429: "Rate limit reached. Please wait a moment and try again.",
}
DEFAULT_FAILURE_MESSAGE = "Failed to get AI advice. Please try again."


class AdviceUnavailable(RuntimeError):
    """Raised when the advisor cannot produce usable advice."""


@dataclass(frozen=True)
class Advice:
    summary: str
    steps: list[str]


@dataclass
class AdviceClient:
    api_key: str | None = field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    model: str = field(default_factory=lambda: os.getenv("OPENAI_MODEL", "gpt-4o"))
    max_tokens: int = 1024
    temperature: float = 0.7
    client: Any = None

    def get_advice(self, snapshot: Mapping[str, Any], question: str) -> Advice:
        if not question or not question.strip():
            raise ValueError("A question is required.")
        client = self._get_client()
        user_message = (
            f"Here is my financial snapshot:\n{json.dumps(snapshot, indent=2)}\n\n"
            f"My question: {question.strip()}"
        )
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": user_message},
                ],
                response_format={"type": "json_object"},
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except APIStatusError as exc:
            logger.error("Advice request failed with status %s", exc.status_code)
            raise AdviceUnavailable(
                STATUS_MESSAGES.get(exc.status_code, DEFAULT_FAILURE_MESSAGE)
            ) from exc
        except APIError as exc:
            logger.error("Advice request failed: %s", exc)
            raise AdviceUnavailable(DEFAULT_FAILURE_MESSAGE) from exc

        choices = getattr(response, "choices", None) or []
        raw = choices[0].message.content if choices else None
        if not raw:
            logger.warning("Advice response was empty")
            raise AdviceUnavailable("No response from AI. Please try again.")
        return parse_advice(raw)

    def _get_client(self):
        if self.client is None:
            if not self.api_key:
                raise AdviceUnavailable("OpenAI API key is not configured.")
            self.client = OpenAI(api_key=self.api_key)
        return self.client


def parse_advice(raw: str) -> Advice:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning("Advice response was not JSON: %r", raw[:200])
        raise AdviceUnavailable("AI returned an unexpected format. Please try again.") from exc

    summary = payload.get("summary") if isinstance(payload, dict) else None
    steps = payload.get("steps") if isinstance(payload, dict) else None
    if not isinstance(summary, str) or not isinstance(steps, list):
        logger.warning("Advice response missing summary or steps")
        raise AdviceUnavailable("AI returned an unexpected format. Please try again.")
    return Advice(summary=summary, steps=[str(step) for step in steps])

"""OpenAI-backed response classifier with rule-based fallback."""

from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..config.settings import ClassifierSettings
from ..models import ResponseCategory
from .rules import RuleBasedCategorizer

SYSTEM_PROMPT = """\
You are a text classifier for customer service SMS responses. Your task is to carefully read the user's message and categorize it into ONE of these EXACT categories (copy the category name exactly as shown):

"Yes" - Use for: affirmative responses, agreement, willingness to be contacted, expressions of interest, "yes", "yeah", "sure", "okay", "call me", "I'm interested", "go ahead", "that works", "sounds good", "please do", "definitely", "absolutely"

"Call at a different time" - Use for: requests to reschedule, time-specific requests, mentions of specific times/days, "call me at 3pm", "call tomorrow", "call next week", "call Monday", "call in the morning", "call later", "different time", "another time", "schedule", "appointment", any time-related scheduling

"No" - Use for: negative responses, declining interest, "no", "nope", "not interested", "not now", "maybe later", "can't", "cannot", "busy", "not available", "not a good time", "decline", "pass", "not at this time"

"24 hours later (No response)" - Use ONLY when there is effectively NO reply: empty message, blank message, or a single character/symbol with no meaning (e.g. ".", "x", "k", "?"). Do NOT use this when the user typed a real message that you don't understand.

"Do not contact" - Use for: opt-out requests, DNC requests, "do not contact", "don't contact", "stop calling", "stop texting", "remove me", "unsubscribe", "opt out", "do not call", "don't call", "never call", "no more calls", "take me off", "remove from list", "DNC"

"Unknown message" - Use when the user typed something but you cannot determine their intent: unclear or ambiguous messages, questions you don't understand, gibberish, messages that don't fit Yes/No/Time/DNC. WHEN IN DOUBT, use "Unknown message".

EXAMPLES:
User: "yes" -> Yes
User: "sure, call me" -> Yes
User: "call me at 3pm" -> Call at a different time
User: "call tomorrow morning" -> Call at a different time
User: "no" -> No
User: "not interested" -> No
User: "stop calling me" -> Do not contact
User: "unsubscribe" -> Do not contact
User: "" or " " or "." or "k" -> 24 hours later (No response)
User: "what?" -> Unknown message
User: "idk" -> Unknown message
User: "asdfgh" -> Unknown message
User: "maybe" -> Unknown message
User: "call me maybe" -> Call at a different time

Respond with ONLY the exact category name, nothing else - no explanations, no quotes."""

CATEGORY_SYNONYMS: dict[str, ResponseCategory] = {
    "yes": ResponseCategory.YES,
    "call at a different time": ResponseCategory.CALL_AT_DIFFERENT_TIME,
    "no": ResponseCategory.NO,
    "24 hours later (no response)": ResponseCategory.NO_RESPONSE_24H,
    "24 hours later": ResponseCategory.NO_RESPONSE_24H,
    "no response": ResponseCategory.NO_RESPONSE_24H,
    "do not contact": ResponseCategory.DO_NOT_CONTACT,
    "do not call": ResponseCategory.DO_NOT_CONTACT,
    "dnc": ResponseCategory.DO_NOT_CONTACT,
    "unknown message": ResponseCategory.UNKNOWN_MESSAGE,
    "unknown": ResponseCategory.UNKNOWN_MESSAGE,
}


@dataclass
class ClassifierError(RuntimeError):
    code: str
    message: str
    status_code: Optional[int] = None

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


def parse_category(raw: str) -> Optional[ResponseCategory]:
    """Map a model completion onto a category, or None if unrecognized."""
    normalized = raw.strip().strip("\"'").strip()
    if not normalized:
        return None
    for category in ResponseCategory:
        if normalized == category.value:
            return category
    lowered = normalized.lower()
    if lowered in CATEGORY_SYNONYMS:
        return CATEGORY_SYNONYMS[lowered]
    # Longest keys first so "unknown message." is not read as "no".
    for key in sorted(CATEGORY_SYNONYMS, key=len, reverse=True):
        if key in lowered or lowered in key:
            return CATEGORY_SYNONYMS[key]
    return None


class ResponseClassifier:
    """Classifies free-text replies, falling back to rules on any failure."""

    MIN_TEXT_LENGTH = 2

    def __init__(
        self,
        settings: ClassifierSettings,
        fallback: Optional[RuleBasedCategorizer] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self.fallback = fallback or RuleBasedCategorizer()
        self._client = client or httpx.AsyncClient(timeout=settings.timeout_seconds)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def classify(self, text: str, ai_enabled: bool) -> ResponseCategory:
        """Classify a reply into one of the six response categories."""
        if len(text.strip()) < self.MIN_TEXT_LENGTH:
            return ResponseCategory.NO_RESPONSE_24H

        if not ai_enabled:
            return self._fallback(text, "AI disabled")
        if not self.settings.is_configured:
            return self._fallback(text, "no API key configured")

        try:
            raw = await self._request(text)
        except ClassifierError as e:
            print(f"[CLASSIFIER ERROR] {e}")
            return self._fallback(text, "request failed")

        category = parse_category(raw)
        if category is None:
            print(f"[CLASSIFIER ERROR] Invalid category returned: {raw!r}")
            return self._fallback(text, "invalid category")

        print(f"[CLASSIFIER] AI category: {category.value}")
        return category

    def _fallback(self, text: str, reason: str) -> ResponseCategory:
        category = self.fallback.categorize(text)
        print(f"[CLASSIFIER] Pattern matching ({reason}): {category.value}")
        return category

    async def _request(self, text: str) -> str:
        url = f"{self.settings.base_url.rstrip('/')}/chat/completions"
        payload = {
            "model": self.settings.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": text},
            ],
            "temperature": self.settings.temperature,
            "max_tokens": self.settings.max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.settings.api_key}"}

        try:
            response = await self._client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise ClassifierError("NETWORK_FAILURE", str(exc)) from exc

        if response.status_code >= 400:
            raise self._map_http_error(response)

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ClassifierError(
                "MALFORMED_RESPONSE", repr(exc), status_code=response.status_code
            ) from exc
        if not isinstance(content, str):
            raise ClassifierError(
                "MALFORMED_RESPONSE", "completion content is not text", response.status_code
            )
        return content

    def _map_http_error(self, response: httpx.Response) -> ClassifierError:
        error: dict[str, Any] = {}
        try:
            body = response.json()
            if isinstance(body, dict) and isinstance(body.get("error"), dict):
                error = body["error"]
        except ValueError:
            pass
        message = str(error.get("message") or response.text or "classifier error")

        if response.status_code == 429:
            code = "QUOTA_EXCEEDED" if error.get("code") == "insufficient_quota" else "RATE_LIMITED"
        else:
            code = "HTTP_ERROR"
        return ClassifierError(code, message, status_code=response.status_code)

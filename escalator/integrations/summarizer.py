"""Client for the generative error-summarization pipeline."""

import asyncio
import json
from typing import Any, Callable, List, Optional

import aiohttp
import structlog

from escalator.config import SummarizerConfig
from escalator.errors import DeliveryError, ParseError


logger = structlog.get_logger()


ANALYSIS_PROMPT = (
    "ERROR ANALYSIS REQUEST: Please analyze this technical error log and provide "
    "a clear, user-friendly explanation. This is NOT market data or investment "
    "advice - this is a system error that needs technical analysis. "
    "ERROR LOG TO ANALYZE: {error_text} "
    "Please provide: 1. What this error means in simple terms "
    "2. Severity level (low, medium, high, critical) "
    "3. What actions should be taken to fix it "
    "4. Any additional technical context. "
    "Focus on technical error analysis, not financial advice."
)


# Response shape matchers. Each returns the summary text or None.

def _match_string(response: Any) -> Optional[str]:
    if isinstance(response, str):
        return response
    return None


def _match_result(response: Any) -> Optional[str]:
    if isinstance(response, dict):
        value = response.get("result")
        if isinstance(value, str) and value:
            return value
    return None


def _match_message(response: Any) -> Optional[str]:
    if isinstance(response, dict):
        value = response.get("message")
        if isinstance(value, str) and value:
            return value
    return None


def _match_data(response: Any) -> Optional[str]:
    if isinstance(response, dict):
        value = response.get("data")
        if value:
            return value if isinstance(value, str) else json.dumps(value)
    return None


def _match_envelope(response: Any) -> Optional[str]:
    # {"$type": "...", "result": ...} with a non-string result
    if isinstance(response, dict):
        if ("$type" in response or "type" in response) and response.get("result"):
            value = response["result"]
            return value if isinstance(value, str) else json.dumps(value)
    return None


RESPONSE_MATCHERS: List[Callable[[Any], Optional[str]]] = [
    _match_string,
    _match_result,
    _match_message,
    _match_data,
    _match_envelope,
]


def extract_summary(response: Any) -> str:
    """
    Pull the summary text out of a pipeline response.

    Tries each known shape in order and falls back to the serialized
    response when none matches.
    """
    for matcher in RESPONSE_MATCHERS:
        value = matcher(response)
        if value is not None:
            return value
    return json.dumps(response)


class Summarizer:
    """
    Sends error text to the summarization pipeline.

    The pipeline is called synchronously (asyncOutput=false) and the
    response is reduced to plain text with extract_summary().
    """

    def __init__(self, config: SummarizerConfig):
        self._config = config

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    async def summarize(self, error_text: str) -> str:
        """
        Summarize one or more error messages.

        Raises:
            DeliveryError: on transport failure or a non-2xx response.
            ParseError: when the response body is not JSON.
        """
        body = {
            "userInput": ANALYSIS_PROMPT.format(error_text=error_text),
            "asyncOutput": False,
        }
        headers = {
            "X-API-KEY": self._config.api_key,
            "Content-Type": "application/json",
        }

        logger.debug("Sending summarization request", input_length=len(error_text))

        try:
            timeout = aiohttp.ClientTimeout(total=self._config.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self._config.url, json=body, headers=headers) as response:
                    text = await response.text()
                    if not 200 <= response.status < 300:
                        raise DeliveryError(
                            f"Summarizer returned status {response.status}: {text[:200]}",
                            stage="summarize",
                            status=response.status,
                        )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DeliveryError(f"Summarizer request failed: {e}", stage="summarize") from e

        try:
            payload = json.loads(text)
        except ValueError as e:
            raise ParseError(f"Summarizer response is not JSON: {text[:200]}") from e

        summary = extract_summary(payload)
        logger.debug("Summarization response received", summary_length=len(summary))
        return summary


"""Client for the pull-request automation (conversation) service."""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp
import structlog

from escalator.config import RemediationConfig
from escalator.errors import DeliveryError


logger = structlog.get_logger()


INSTRUCTION_TEMPLATE = (
    "Fix the following exception: {exception}\n\n"
    "After making the fix, create a pull request to the main branch."
)


@dataclass
class RemediationStart:
    """Response to a remediation start request."""
    job_id: str
    status: Optional[str] = None
    link: Optional[str] = None


@dataclass
class RemediationStatusReport:
    """One status poll response."""
    status: Optional[str] = None
    result_ref: Optional[str] = None
    runtime_status: Optional[str] = None


def build_instruction(exception_message: str) -> str:
    return INSTRUCTION_TEMPLATE.format(exception=exception_message)


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def extract_result_ref(data: Dict[str, Any]) -> Optional[str]:
    """Pull the pull-request number out of a conversation response."""
    value = data.get("pr_number")
    if value is None:
        value = data.get("result_ref")

    if isinstance(value, list):
        value = value[0] if value else None
    if value is None or value == "":
        return None
    return str(value)


class RemediationClient:
    """
    Starts remediation conversations and reads their status.

    A conversation asks the service to fix an exception in the
    configured repository and open a pull request.
    """

    def __init__(self, config: RemediationConfig):
        self._config = config

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    @property
    def repository(self) -> str:
        return self._config.repository

    def _headers(self) -> Dict[str, str]:
        return {
            "x-session-api-key": self._config.api_key,
            "Content-Type": "application/json",
        }

    def conversation_link(self, job_id: str) -> str:
        return f"{self._config.base_url}/conversations/{job_id}"

    async def _request(self, method: str, url: str, stage: str, json: Optional[Dict] = None) -> Dict:
        try:
            timeout = aiohttp.ClientTimeout(total=self._config.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(method, url, json=json, headers=self._headers()) as response:
                    if not 200 <= response.status < 300:
                        text = await response.text()
                        raise DeliveryError(
                            f"Remediation service returned status {response.status}: {text[:200]}",
                            stage=stage,
                            status=response.status,
                        )
                    data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise DeliveryError(f"Remediation request failed: {e}", stage=stage) from e

        if not isinstance(data, dict):
            raise DeliveryError("Remediation response is not an object", stage=stage)
        return data

    async def start(self, instruction: str) -> RemediationStart:
        """
        Start a remediation conversation.

        Raises:
            DeliveryError: when the request fails or carries no identifier.
        """
        body = {
            "initial_user_msg": instruction,
            "repository": self._config.repository,
        }
        data = await self._request("POST", self._config.conversations_url, "remediation", json=body)

        job_id = data.get("conversation_id") or data.get("id")
        if not job_id:
            raise DeliveryError("Remediation response has no conversation id", stage="remediation")

        job_id = str(job_id)
        logger.info("Remediation conversation created", job_id=job_id, repository=self._config.repository)
        return RemediationStart(
            job_id=job_id,
            status=data.get("status"),
            link=self.conversation_link(job_id),
        )

    async def status(self, job_id: str) -> RemediationStatusReport:
        """
        Read the status of a conversation.

        Raises:
            DeliveryError: on transport failure or a non-2xx response.
        """
        url = f"{self._config.conversations_url}/{job_id}"
        data = await self._request("GET", url, "remediation_poll")

        return RemediationStatusReport(
            status=_as_text(data.get("status")),
            result_ref=extract_result_ref(data),
            runtime_status=_as_text(data.get("runtime_status")),
        )

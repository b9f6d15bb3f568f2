"""SMS notifications through the Twilio Messages API."""

import asyncio
from typing import List, Optional

import aiohttp
import structlog

from escalator.config import SMSConfig
from escalator.models.event import Event
from escalator.models.remediation import RemediationJob, RemediationStatus


logger = structlog.get_logger()

# Twilio rejects bodies over 1600 characters
MAX_BODY_LENGTH = 1600


def build_errors_found_message(events: List[Event], remediation_requested: bool = False) -> str:
    """Message announcing that new errors were found in a cycle."""
    count = len(events)
    services = sorted({e.service for e in events})
    noun = "error" if count == 1 else "errors"
    lines = [f"{count} new {noun} detected in {', '.join(services)}."]

    if events:
        first = events[0].message or "No message"
        lines.append(f"First: {first[:200]}")

    if remediation_requested:
        lines.append("An automated fix has been requested.")
    return "\n".join(lines)


def build_remediation_message(job: RemediationJob) -> str:
    """Message reporting the final outcome of a remediation job."""
    if job.status == RemediationStatus.SUCCEEDED:
        text = f"Fix ready: pull request #{job.result_ref} was opened."
    elif job.status == RemediationStatus.FAILED:
        text = f"Automated fix failed: {job.last_error or 'unknown error'}"
    elif job.status == RemediationStatus.TIMED_OUT:
        text = f"Automated fix did not finish after {job.poll_count} status checks."
    else:
        text = f"Automated fix is {job.status.value}."

    if job.link:
        text += f"\n{job.link}"
    return text


class SMSNotifier:
    """Sends text messages to the on-call phone number."""

    def __init__(self, config: SMSConfig):
        self._config = config

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    async def send(self, body: str, to: Optional[str] = None) -> bool:
        """
        Send one SMS.

        Returns True on a 2xx response. Transport errors and other
        statuses are logged and return False.
        """
        recipient = to or self._config.to_number
        data = {
            "From": self._config.from_number,
            "To": recipient,
            "Body": body[:MAX_BODY_LENGTH],
        }
        auth = aiohttp.BasicAuth(self._config.account_sid, self._config.auth_token)

        try:
            timeout = aiohttp.ClientTimeout(total=self._config.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self._config.messages_url, data=data, auth=auth) as response:
                    if 200 <= response.status < 300:
                        logger.info("SMS sent", to=recipient)
                        return True

                    text = await response.text()
                    logger.error(
                        "Failed to send SMS",
                        to=recipient,
                        status=response.status,
                        response=text[:200],
                    )
                    return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Error sending SMS", to=recipient, error=str(e))
            return False

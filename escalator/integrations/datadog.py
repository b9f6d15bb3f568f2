"""Log-search adapter that pulls error logs for a time window."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiohttp
import structlog

from escalator.config import DatadogConfig
from escalator.errors import AdapterError
from escalator.models.event import Event


logger = structlog.get_logger()


class DatadogLogSource:
    """
    Event source backed by the Datadog Logs search API (v2).

    Each query returns the raw records of one page converted to Events.
    Records without an id are dropped here so nothing downstream has to
    deal with missing identities.
    """

    def __init__(self, config: DatadogConfig):
        self._config = config

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    def build_request(
        self,
        window_start: Optional[datetime],
        window_end: Optional[datetime],
        query: Optional[str] = None,
        sort: Optional[str] = None,
        page_limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Build the search request body."""
        filter_ = {"query": query or self._config.query}
        if window_start is not None:
            filter_["from"] = window_start.isoformat()
        if window_end is not None:
            filter_["to"] = window_end.isoformat()

        return {
            "filter": filter_,
            "sort": sort or self._config.sort,
            "page": {"limit": page_limit or self._config.page_limit},
        }

    async def query(
        self,
        window_start: Optional[datetime],
        window_end: Optional[datetime],
        query: Optional[str] = None,
        sort: Optional[str] = None,
        page_limit: Optional[int] = None,
    ) -> List[Event]:
        """
        Search logs in [window_start, window_end].

        Raises:
            AdapterError: on transport failures, non-2xx responses or a
                body without a "data" list.
        """
        body = self.build_request(window_start, window_end, query, sort, page_limit)
        headers = {
            "DD-API-KEY": self._config.api_key,
            "DD-APPLICATION-KEY": self._config.app_key,
            "Content-Type": "application/json",
        }

        logger.debug(
            "Searching logs",
            window_start=body["filter"].get("from"),
            window_end=body["filter"].get("to"),
            page_limit=body["page"]["limit"],
        )

        try:
            timeout = aiohttp.ClientTimeout(total=self._config.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                    self._config.search_url, json=body, headers=headers
                ) as response:
                    if response.status >= 300:
                        text = await response.text()
                        raise AdapterError(
                            f"Log search failed with status {response.status}: {text[:200]}"
                        )
                    payload = await response.json(content_type=None)
        except AdapterError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise AdapterError(f"Log search request failed: {e}") from e

        return self.parse_response(payload)

    @staticmethod
    def parse_response(payload: Any) -> List[Event]:
        """Convert a search response body into Events."""
        if not isinstance(payload, dict):
            raise AdapterError("Log search response is not an object")

        records = payload.get("data")
        if records is None:
            return []
        if not isinstance(records, list):
            raise AdapterError("Log search response 'data' is not a list")

        received_at = datetime.now(timezone.utc)
        events = []
        dropped = 0
        for record in records:
            event = Event.from_datadog(record, received_at=received_at)
            if event is None:
                dropped += 1
                continue
            events.append(event)

        if dropped:
            logger.warning("Dropped log records without id", dropped=dropped)

        return events

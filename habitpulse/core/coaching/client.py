"""HTTP client for the external coaching-tip generator."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


class CoachingError(Exception):
    """The coaching service could not take the request."""


class CoachClient:
    def __init__(
        self,
        api_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def send_completion(self, context: Dict[str, Any]) -> Dict[str, Any]:
        """Hand one completion context to the coach. Raises ``CoachingError``."""
        try:
            resp = self.session.post(
                self.api_url,
                json=context,
                headers=self._headers(),
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.exceptions.RequestException as exc:
            logger.warning("Coaching request for event %s failed: %s", context.get("event_id"), exc)
            raise CoachingError(str(exc)) from exc
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            return {}

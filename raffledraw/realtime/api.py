import os
import logging
from urllib.parse import urljoin
from typing import Any, Mapping, Optional

import requests
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

BROADCAST_PATH = "/realtime/v1/api/broadcast"


class RealtimeChannel:
    """Handle for one broadcast topic on a :class:`RealtimeClient`."""

    def __init__(self, client: "RealtimeClient", topic: str):
        self.client = client
        self.topic = topic
        self.closed = False

    def send(self, event: str, payload: Mapping[str, Any]) -> str:
        """Send ``payload`` as ``event`` on this topic. Returns ``"ok"``.

        Raises
        ------
        RuntimeError
            If the channel was already removed.
        requests.HTTPError
            If the realtime service rejects the message.
        """
        if self.closed:
            raise RuntimeError(f"Channel '{self.topic}' has been removed")
        self.client._request(
            "POST",
            BROADCAST_PATH,
            json={
                "messages": [
                    {"topic": self.topic, "event": event, "payload": dict(payload)}
                ]
            },
        )
        return "ok"


class RealtimeClient:
    """HTTP client for a realtime service's broadcast endpoint.

    Configuration comes from ``REALTIME_BASE_URL``, ``REALTIME_SERVICE_KEY``
    and ``REALTIME_TIMEOUT`` unless passed explicitly.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_key: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        load_dotenv()
        url = base_url or os.getenv("REALTIME_BASE_URL")
        if not url:
            raise ValueError("Environment variable 'REALTIME_BASE_URL' is not set")

        self.base_url = url.rstrip("/")
        self.service_key = service_key or os.getenv("REALTIME_SERVICE_KEY", "")
        self.timeout = (
            timeout
            if timeout is not None
            else float(os.getenv("REALTIME_TIMEOUT", "10"))
        )
        self.session = session or requests.Session()

    # -------- headers --------
    @property
    def auth_headers(self) -> Mapping[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.service_key:
            headers["apikey"] = self.service_key
            headers["Authorization"] = f"Bearer {self.service_key}"
        return headers

    # -------- core request --------
    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict] = None,
    ) -> Any:
        url = urljoin(self.base_url + "/", path.lstrip("/"))
        r = self.session.request(
            method=method.upper(),
            url=url,
            headers=self.auth_headers,
            json=json,
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json() if r.content else None

    # -------- channels --------
    def channel(self, topic: str) -> RealtimeChannel:
        return RealtimeChannel(self, topic)

    def remove_channel(self, channel: RealtimeChannel) -> None:
        channel.closed = True
        logger.debug(f"Removed realtime channel {channel.topic}")

    def close(self) -> None:
        self.session.close()

from typing import Any, Dict, Optional
import logging

import requests
from requests import Session

logger = logging.getLogger("userview.api")


class SiteAPI:
    """Small HTTP client for site metadata.

    Everything profile related goes over the websocket channel; this only
    reads the site record once at startup so page titles can carry the
    site name.
    """
    def __init__(self, base_url: str, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session: Session = requests.Session()

    def _get(self, path: str, params: Dict[str, Any] | None = None) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        resp = self.session.get(url, params=params or {}, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def get_site_name(self) -> Optional[str]:
        data = self._get("/api/v1/site")
        site = data.get("site") or {}
        return site.get("name")


def fetch_site_name(base_url: str) -> Optional[str]:
    """Return the site name, or None when no site URL is configured or the
    lookup fails. A missing name only shortens the page title."""
    if not base_url:
        return None
    try:
        return SiteAPI(base_url).get_site_name()
    except (requests.RequestException, ValueError) as e:
        logger.warning("could not load site name from %s: %s", base_url, e)
        return None

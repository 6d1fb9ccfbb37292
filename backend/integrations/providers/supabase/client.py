"""
Supabase Management API client (requests)
"""
import logging
from typing import Any, Dict, Optional

import requests

from config import PROVIDER_HTTP_TIMEOUT

logger = logging.getLogger(__name__)

MANAGEMENT_API = "https://api.supabase.com/v1"


class SupabaseAPIError(Exception):
    """Raised when the Supabase API rejects a request or cannot be reached"""
    pass


class SupabaseClient:
    """Thin wrapper around the Management API for one project."""

    def __init__(self, pat: str, project_ref: str, session: Optional[requests.Session] = None):
        self._pat = pat
        self.project_ref = project_ref
        self.session = session or requests.Session()

    def __repr__(self) -> str:
        return f"<SupabaseClient project_ref={self.project_ref!r}>"

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._pat}", "Content-Type": "application/json"}

    def _request(self, method: str, path: str, payload: Any, timeout: float) -> requests.Response:
        url = f"{MANAGEMENT_API}/projects/{self.project_ref}{path}"
        try:
            resp = self.session.request(method, url, json=payload, headers=self._headers(), timeout=timeout)
        except requests.RequestException as e:
            raise SupabaseAPIError(f"{method} {path} failed: {e}") from e
        if not 200 <= resp.status_code < 300:
            raise SupabaseAPIError(f"{method} {path} returned {resp.status_code}: {resp.text[:300]}")
        return resp

    def execute_sql(self, query: str, timeout: float = PROVIDER_HTTP_TIMEOUT) -> None:
        self._request("POST", "/database/query", {"query": query}, timeout)

    def update_auth_config(self, settings: Dict[str, Any], timeout: float = PROVIDER_HTTP_TIMEOUT) -> None:
        self._request("PATCH", "/config/auth", settings, timeout)


def validate_connection(project_url: str, anon_key: str, timeout: float = 10.0) -> None:
    """
    Check that the REST endpoint accepts the anon key.

    Raises:
        SupabaseAPIError: If the project cannot be reached or rejects the key
    """
    url = project_url.rstrip("/") + "/rest/v1/"
    try:
        resp = requests.get(url, headers={"apikey": anon_key, "Authorization": f"Bearer {anon_key}"}, timeout=timeout)
    except requests.RequestException as e:
        raise SupabaseAPIError(f"Cannot reach {project_url}: {e}") from e
    if resp.status_code in (401, 403):
        raise SupabaseAPIError("Supabase rejected the anon key")
    if resp.status_code >= 500:
        raise SupabaseAPIError(f"Supabase returned {resp.status_code}")


__all__ = ["SupabaseClient", "SupabaseAPIError", "validate_connection", "MANAGEMENT_API"]

"""Pattern-mining backend REST client.

Wraps the backend's JSON endpoints for system status, jobs, datasets,
patterns and analyses.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
import urllib3

from .errors import ApiError

try:
    import certifi
    DEFAULT_CA_BUNDLE = certifi.where()
except Exception:
    DEFAULT_CA_BUNDLE = True


DEFAULT_BASE_URL = "http://localhost:8000"


class BackendClient:
    """Client for the pattern-mining backend.

    Every method returns decoded JSON or raises ``ApiError``.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: int = 10,
        verify: bool = True,
        ca_bundle: Optional[str] = None,
        retries: int = 3,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retries = retries
        self._verify = self._determine_verify(not verify, ca_bundle)
        self._session: Optional[requests.Session] = None

        if self._verify is False:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    # --- System ---

    def get_system_status(self) -> Dict[str, Any]:
        return self._request("GET", "/api/system/status")

    def get_task(self, task_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/system/tasks/{quote(task_id, safe='')}")

    # --- Listings and details ---

    def list_datasets(self) -> Any:
        return self._request("GET", "/api/data/list")

    def list_patterns(self) -> Dict[str, Any]:
        return self._request("GET", "/api/patterns/list")

    def get_pattern_details(self, timeframe: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/patterns/{quote(timeframe, safe='')}")

    def list_analyses(self) -> Dict[str, Any]:
        return self._request("GET", "/api/analysis/list")

    def get_analysis_details(self, timeframe: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/analysis/{quote(timeframe, safe='')}")

    # --- Job creation ---

    def extract_patterns(self, **params: Any) -> Dict[str, Any]:
        return self._request("POST", "/api/patterns/extract", json=params)

    def analyze_patterns(self, **params: Any) -> Dict[str, Any]:
        return self._request("POST", "/api/analysis/analyze", json=params)

    def run_backtest(self, **params: Any) -> Dict[str, Any]:
        return self._request("POST", "/api/analysis/backtest", json=params)

    def preprocess_data(self, **params: Any) -> Dict[str, Any]:
        return self._request("POST", "/api/data/preprocess", json=params)

    # --- Session handling ---

    def _determine_verify(self, insecure: bool, ca_bundle: Optional[str]):
        """Determine SSL verification setting."""
        if insecure:
            return False
        if ca_bundle:
            return ca_bundle
        return DEFAULT_CA_BUNDLE

    def _get_session(self) -> requests.Session:
        """Get or create a requests session with retry configuration.

        Only idempotent methods are retried; job creation is not.
        """
        if self._session is None:
            session = requests.Session()
            retry = Retry(
                total=self.retries,
                connect=self.retries,
                read=self.retries,
                backoff_factor=0.5,
                status_forcelist=(429, 500, 502, 503, 504),
                allowed_methods=("GET", "HEAD"),
                raise_on_status=False,
            )
            adapter = HTTPAdapter(
                max_retries=retry,
                pool_connections=5,
                pool_maxsize=10,
            )
            session.mount("https://", adapter)
            session.mount("http://", adapter)
            session.verify = self._verify
            session.headers.update({"User-Agent": "fxp-dashboard/1.0", "Accept": "application/json"})
            self._session = session
        return self._session

    def close(self) -> None:
        """Close the session and release resources."""
        if self._session is not None:
            try:
                self._session.close()
            except Exception:
                pass
            self._session = None

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        session = self._get_session()
        try:
            resp = session.request(method, self.base_url + path, timeout=self.timeout, **kwargs)
        except requests.exceptions.SSLError as e:
            raise ApiError(path, "TLS/SSL error: certificate verify failed", cause=e)
        except requests.exceptions.RequestException as e:
            raise ApiError(path, str(e), cause=e)

        if not resp.ok:
            raise ApiError(path, f"HTTP {resp.status_code}: {resp.reason or 'request failed'}", status_code=resp.status_code)

        try:
            return resp.json()
        except ValueError as e:
            raise ApiError(path, "Response is not valid JSON", status_code=resp.status_code, cause=e)

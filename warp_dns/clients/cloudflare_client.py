import requests
import structlog
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

log = structlog.get_logger()

DEFAULT_API_URL = "https://api.cloudflare.com/client/v4"


class CloudflareAPIError(Exception):
    """Raised when a Cloudflare API call fails or returns an unsuccessful envelope."""

    def __init__(self, message, status_code=None, errors=None):
        super().__init__(message)
        self.status_code = status_code
        self.errors = errors or []


class CloudflareClient:
    def __init__(self, config):
        self.api_url = (config.get("cloudflare_api_url") or DEFAULT_API_URL).rstrip("/")
        self.timeout = config.get("http_timeout_seconds", 10)
        self.max_retries = config.get("http_max_retries", 0)
        self.session = self._get_requests_session()
        self.session.headers.update(self._auth_headers(config))

    def _get_requests_session(self):
        # Only idempotent reads are retried, and only when explicitly configured.
        retry_strategy = Retry(
            total=self.max_retries,
            connect=self.max_retries,
            read=self.max_retries,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session = requests.Session()
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        return session

    @staticmethod
    def _auth_headers(config):
        headers = {"Content-Type": "application/json"}
        if config.get("api_token"):
            headers["Authorization"] = f"Bearer {config['api_token']}"
        else:
            headers["X-Auth-Email"] = config.get("email") or ""
            headers["X-Auth-Key"] = config.get("api_key") or ""
        return headers

    def _api_request(self, method, path, params=None, data=None):
        """
        Performs a single Cloudflare API call and returns the ``result`` member
        of the response envelope.

        Raises:
            CloudflareAPIError: On network failure, a non-2xx status, a body
                that is not JSON, or an envelope with ``success`` set to false.
        """
        url = f"{self.api_url}{path}"
        try:
            log.debug("Cloudflare API Request", url=url, method=method, params=params, data=data)
            response = self.session.request(method, url, params=params, json=data, timeout=self.timeout)
            log.debug("Cloudflare API Response", url=url, status_code=response.status_code)
        except requests.exceptions.RequestException as e:
            log.error("Cloudflare API request failed due to network or request issue", url=url, error=e)
            raise CloudflareAPIError(f"{method} {path} failed: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.ok or not isinstance(payload, dict) or not payload.get("success"):
            errors = payload.get("errors", []) if isinstance(payload, dict) else []
            log.error(
                "Cloudflare API returned an error",
                url=url,
                method=method,
                status_code=response.status_code,
                errors=errors,
                response=response.text[:200] if response.text else "No response text",
            )
            raise CloudflareAPIError(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
                errors=errors,
            )
        return payload.get("result")

"""Authenticated REST connection to the target platform."""

import logging
from typing import Any, Dict, Iterator, List, Optional
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..errors import ConfigurationError, TransportError
from ..settings import DEFAULT_API_VERSION, RunSettings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60


def create_session(max_retries: int = 3, backoff_factor: float = 2.0) -> requests.Session:
    """Create a requests session with retry logic."""
    session = requests.Session()

    retries = Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=[429, 500, 502, 503, 504],
    )

    adapter = HTTPAdapter(max_retries=retries)
    session.mount("https://", adapter)
    session.mount("http://", adapter)

    return session


def error_messages(response: requests.Response) -> List[str]:
    """Extract error messages from a platform error response."""
    try:
        body = response.json()
    except ValueError:
        return [f"HTTP {response.status_code}: {response.text[:500]}"]

    entries = body if isinstance(body, list) else [body]
    messages = []
    for entry in entries:
        if not isinstance(entry, dict):
            messages.append(str(entry))
            continue
        code = entry.get("errorCode") or entry.get("statusCode") or entry.get("error")
        message = entry.get("message") or entry.get("error_description") or str(entry)
        messages.append(f"{code}: {message}" if code else message)
    return messages or [f"HTTP {response.status_code}"]


class PlatformConnection:
    """
    A logged-in session against the platform's REST API.

    Handles:
    - Versioned URL building
    - Bearer authentication
    - Retries on throttling and server errors
    - Describe and query calls used outside of commits
    """

    def __init__(
        self,
        instance_url: str,
        access_token: str,
        api_version: str = DEFAULT_API_VERSION,
        org_id: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: int = DEFAULT_TIMEOUT
    ):
        """
        Initialize the connection.

        Args:
            instance_url: Base URL of the org (e.g. https://acme.my.salesforce.com)
            access_token: OAuth access token
            api_version: REST API version, e.g. "60.0"
            org_id: Organization id, used to locate metadata snapshots
            session: Custom requests session
            timeout: Per-request timeout in seconds
        """
        self.instance_url = instance_url.rstrip("/")
        self.api_version = api_version
        self.org_id = org_id
        self.timeout = timeout
        self._session = session or create_session()
        self._session.headers["Authorization"] = f"Bearer {access_token}"
        self._session.headers.setdefault("Accept", "application/json")

    @property
    def base_path(self) -> str:
        return f"/services/data/v{self.api_version}"

    def url(self, path: str) -> str:
        """Build an absolute URL from a path relative to the versioned data API."""
        if path.startswith("http://") or path.startswith("https://"):
            return path
        if not path.startswith("/services/"):
            path = f"{self.base_path}/{path.lstrip('/')}"
        return urljoin(self.instance_url + "/", path.lstrip("/"))

    def request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """
        Send a request, returning the response whatever its status.

        Raises:
            TransportError: If the request could not be sent or answered
        """
        kwargs.setdefault("timeout", self.timeout)
        url = self.url(path)
        try:
            response = self._session.request(method, url, **kwargs)
        except requests.exceptions.RequestException as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        if response.status_code == 401:
            raise TransportError(f"{method} {url}: session expired or invalid (401)")
        if response.status_code >= 500:
            raise TransportError(
                f"{method} {url} returned {response.status_code}: {'; '.join(error_messages(response))}"
            )
        return response

    def request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request that must succeed and return its JSON body."""
        response = self.request(method, path, **kwargs)
        if response.status_code >= 400:
            raise TransportError(
                f"{method} {path} returned {response.status_code}: {'; '.join(error_messages(response))}"
            )
        return response.json() if response.content else None

    def describe(self, entity_type: str) -> Dict[str, Any]:
        """Fetch the field description of an entity type."""
        return self.request_json("GET", f"sobjects/{entity_type}/describe")

    def query(self, soql: str) -> Iterator[Dict[str, Any]]:
        """Run a query, following result pages."""
        body = self.request_json("GET", "query", params={"q": soql})
        while True:
            for record in body.get("records", []):
                yield record
            next_url = body.get("nextRecordsUrl")
            if body.get("done", True) or not next_url:
                break
            body = self.request_json("GET", next_url)

    def close(self) -> None:
        self._session.close()


def _org_id_from_identity(identity_url: Optional[str]) -> Optional[str]:
    """Identity URLs look like https://login.salesforce.com/id/<orgId>/<userId>."""
    if not identity_url:
        return None
    parts = identity_url.rstrip("/").split("/")
    return parts[-2] if len(parts) >= 2 else None


def login(settings: RunSettings, session: Optional[requests.Session] = None) -> PlatformConnection:
    """
    Open a platform connection from settings.

    Uses a pre-issued token (SF_INSTANCE_URL + SF_ACCESS_TOKEN) when given,
    otherwise the OAuth2 username-password flow against SF_LOGIN_URL.

    Raises:
        ConfigurationError: If credentials are missing
        TransportError: If the login request fails
    """
    session = session or create_session()

    if settings.access_token and settings.instance_url:
        connection = PlatformConnection(
            instance_url=settings.instance_url,
            access_token=settings.access_token,
            api_version=settings.api_version,
            session=session,
        )
        userinfo = connection.request_json("GET", "/services/oauth2/userinfo")
        connection.org_id = (userinfo or {}).get("organization_id")
        logger.info(f"Connected to {connection.instance_url} with a pre-issued token")
        return connection

    missing = [
        name for name, value in [
            ("SF_USERNAME", settings.username),
            ("SF_PASSWORD", settings.password),
            ("SF_CLIENT_ID", settings.client_id),
        ] if not value
    ]
    if missing:
        raise ConfigurationError(f"Missing platform credentials: {', '.join(missing)}")

    token_url = f"{settings.login_url.rstrip('/')}/services/oauth2/token"
    payload = {
        "grant_type": "password",
        "client_id": settings.client_id,
        "username": settings.username,
        "password": settings.password,
    }
    if settings.client_secret:
        payload["client_secret"] = settings.client_secret

    try:
        response = session.post(token_url, data=payload, timeout=DEFAULT_TIMEOUT)
    except requests.exceptions.RequestException as e:
        raise TransportError(f"Login to {settings.login_url} failed: {e}") from e

    if response.status_code != 200:
        raise TransportError(f"Login to {settings.login_url} failed: {'; '.join(error_messages(response))}")

    token = response.json()
    connection = PlatformConnection(
        instance_url=token["instance_url"],
        access_token=token["access_token"],
        api_version=settings.api_version,
        org_id=_org_id_from_identity(token.get("id")),
        session=session,
    )
    logger.info(f"Authenticated to {connection.instance_url} as {settings.username}")
    return connection

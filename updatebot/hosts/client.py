"""HTTP client that authenticates outbound calls with host rules."""

import httpx

from updatebot.config.models import Configuration, host_of
from updatebot.errors import AuthError, ForgeError
from updatebot.logging.audit import get_audit_logger


class HostHttpClient:
    """Sends requests, attaching the token of the host rule matching each URL."""

    def __init__(self, config: Configuration, timeout: float = 30.0):
        self._config = config
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout, connect=10.0))
        return self._client

    def credentials_for(self, url: str) -> dict[str, str]:
        """Authorization headers for `url`.

        Raises AuthError when no host rule matches or the rule has no token.
        """
        host = host_of(url)
        rule = self._config.find_host_rule(url)
        if rule is None:
            raise AuthError(f"No host rule matches {host}", host=host)
        if not rule.has_token:
            raise AuthError(f"Host rule for {rule.match_host} has no token", host=host)
        return {"Authorization": f"token {rule.token}"}

    async def request(
        self, method: str, url: str, *, credentialed: bool = True, **kwargs
    ) -> httpx.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        if credentialed:
            headers.update(self.credentials_for(url))

        client = await self._get_client()
        try:
            response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.ConnectError:
            raise ForgeError(f"Cannot reach {host_of(url)}", status_code=502)
        except httpx.TimeoutException:
            raise ForgeError(f"{host_of(url)} timed out", status_code=504)
        except httpx.HTTPError as e:
            raise ForgeError(f"HTTP error talking to {host_of(url)}: {e}", status_code=502)

        if response.status_code in (401, 403):
            get_audit_logger().warning(
                "Host rejected credentials",
                extra={"audit_data": {
                    "host": host_of(url),
                    "method": method,
                    "status": response.status_code,
                }},
            )
            raise AuthError(
                f"{host_of(url)} rejected the request ({response.status_code})", host=host_of(url)
            )
        if response.status_code >= 400:
            raise ForgeError(
                f"{method} {url} failed with {response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def get_json(self, url: str, *, credentialed: bool = True, **kwargs):
        response = await self.request("GET", url, credentialed=credentialed, **kwargs)
        return response.json()

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

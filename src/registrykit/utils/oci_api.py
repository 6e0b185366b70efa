import json
import asyncio
import logging
from typing import Any, Awaitable, Callable, NamedTuple, Sequence, TypeVar
from dataclasses import dataclass

import httpx

from registrykit.utils.errors import (
    AuthDiscoveryError,
    ChallengeError,
    DecodeError,
    RegistryURLError,
    StatusError,
)
from registrykit.utils.models import Manifest

CATALOG_SCOPE = "registry:catalog:*"
REPOSITORY_SCOPE = "repository:*:pull"

API_VERSION_HEADER = "Docker-Distribution-Api-Version"
API_VERSION = "registry/2.0"

MANIFEST_ACCEPT = ("application/vnd.docker.distribution.manifest.v2+json",)

DEFAULT_TIMEOUT = 30.0

T = TypeVar("T")


@dataclass
class Options:
    insecure: bool = False
    timeout: float | None = None
    basic_auth: bool = False


class Credential(NamedTuple):
    scope: str
    token: str


class Challenge(NamedTuple):
    realm: str
    service: str


def parse_challenge(header: str) -> Challenge | None:
    """Parse `Bearer realm="<realm>",service="<service>"`.

    Anything else, including extra parameters, whitespace or a missing
    quote, is rejected.
    """
    prefix, separator, suffix = 'Bearer realm="', '",service="', '"'
    if len(header) <= len(prefix) or not header.startswith(prefix):
        return None
    if not header.endswith(suffix):
        return None

    realm, found, service = header[len(prefix) : -len(suffix)].partition(
        separator
    )
    if not found or not realm or not service:
        return None
    if '"' in realm or '"' in service:
        return None

    return Challenge(realm, service)


def decode_json(body: bytes) -> Any:
    try:
        return json.loads(body)
    except ValueError as e:
        raise DecodeError(f"invalid JSON response: {e}") from e


def decode_token(body: bytes) -> str:
    data = decode_json(body)
    if not isinstance(data, dict):
        raise DecodeError("token response is not an object")

    # Field names match case-insensitively, an exact "Token" wins.
    keys = ["Token"] + [
        k for k in data if k != "Token" and k.lower() == "token"
    ]
    token = next((data[k] for k in keys if k in data), None)
    if not isinstance(token, str):
        raise DecodeError("token response has no token")

    return token


def _string_list(data: Any, key: str) -> list[str]:
    if not isinstance(data, dict):
        raise DecodeError("response is not an object")

    values = data.get(key) or []
    if not isinstance(values, list) or not all(
        isinstance(v, str) for v in values
    ):
        raise DecodeError(f"{key}: expected a list of strings")

    return values


def check_registry_url(registry: str) -> str:
    try:
        url = httpx.URL(registry)
    except httpx.InvalidURL as e:
        raise RegistryURLError(f"incorrect registry URL: {e}") from e

    if url.scheme not in ("http", "https") or not url.host:
        raise RegistryURLError(f"incorrect registry URL: {registry!r}")

    return registry


class CredentialCache:
    def __init__(self, negotiate: Callable[[str], Awaitable[str]]) -> None:
        self._negotiate = negotiate
        self._credentials: dict[str, Credential] = {}
        self._lock = asyncio.Lock()

    def __contains__(self, scope: str) -> bool:
        return scope in self._credentials

    def __len__(self) -> int:
        return len(self._credentials)

    async def resolve(self, scope: str) -> str:
        async with self._lock:
            if not (credential := self._credentials.get(scope)):
                logging.debug(f"Negotiating a token for {scope}.")
                credential = Credential(scope, await self._negotiate(scope))
                self._credentials[scope] = credential

        return credential.token


class RegistryClient:
    def __init__(
        self,
        registry: str,
        user: str = "",
        password: str = "",
        options: Options | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        options = options or Options()
        self.registry = check_registry_url(registry)
        self.user = user
        self.password = password
        self.basic_auth = options.basic_auth
        self.timeout = options.timeout or DEFAULT_TIMEOUT
        self.credentials = CredentialCache(self.token)
        self.http = httpx.AsyncClient(
            verify=not options.insecure,
            timeout=self.timeout,
            follow_redirects=True,
            transport=transport,
        )

    async def __aenter__(self) -> "RegistryClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.http.aclose()

    def endpoint(self, path: str) -> str:
        return f"{self.registry.rstrip('/')}/{path.lstrip('/')}"

    async def catalog(self) -> list[str]:
        body = await self.request(self.endpoint("v2/_catalog"), CATALOG_SCOPE)
        return _string_list(decode_json(body), "repositories")

    async def tags(self, repository: str) -> list[str]:
        body = await self.request(
            self.endpoint(f"v2/{repository}/tags/list/"), REPOSITORY_SCOPE
        )
        return _string_list(decode_json(body), "tags")

    async def manifest(self, repository: str, tag: str) -> Manifest:
        body = await self.request(
            self.endpoint(f"v2/{repository}/manifests/{tag}"),
            REPOSITORY_SCOPE,
            MANIFEST_ACCEPT,
        )
        manifest = Manifest.from_dict(decode_json(body))

        if "list" in manifest.media_type:
            logging.warning(f"manifest list in {repository}/{tag}")
            return Manifest()

        return manifest

    async def request(
        self, endpoint: str, scope: str, accept: Sequence[str] = ()
    ) -> bytes:
        headers = [("Accept", value) for value in accept]
        auth = None

        if self.basic_auth:
            auth = httpx.BasicAuth(self.user, self.password)
        else:
            token = await self.credentials.resolve(scope)
            headers.append(("Authorization", f"Bearer {token}"))

        logging.debug(f"GET {endpoint}")
        return await self._deadline(self._fetch(endpoint, headers, auth))

    async def _fetch(
        self,
        endpoint: str,
        headers: list[tuple[str, str]],
        auth: httpx.Auth | None,
    ) -> bytes:
        async with self.http.stream(
            "GET", endpoint, headers=headers, auth=auth
        ) as response:
            if response.status_code != httpx.codes.OK:
                raise StatusError(response.status_code)

            return await response.aread()

    async def _deadline(self, call: Awaitable[T]) -> T:
        # httpx times each phase separately, this bounds the whole exchange.
        try:
            return await asyncio.wait_for(call, self.timeout)
        except asyncio.TimeoutError as e:
            raise httpx.TimeoutException(
                f"no complete response within {self.timeout}s"
            ) from e

    async def token(self, scope: str) -> str:
        """Negotiate a Bearer token for `scope`.

        Reference: https://distribution.github.io/distribution/spec/auth/token/
        """
        # Check that the registry API supports version 2.
        r = await self._deadline(self.http.get(self.endpoint("v2/")))
        if r.status_code not in (httpx.codes.OK, httpx.codes.UNAUTHORIZED):
            raise StatusError(r.status_code)

        if API_VERSION not in r.headers.get_list(API_VERSION_HEADER):
            raise AuthDiscoveryError(
                "missing or unexpected registry version header"
            )

        challenge = next(
            (
                parsed
                for www in r.headers.get_list("WWW-Authenticate")
                if (parsed := parse_challenge(www))
            ),
            None,
        )
        if not challenge:
            raise ChallengeError(
                "missing or unexpected registry authentication header"
            )

        r = await self._deadline(
            self.http.get(
                challenge.realm,
                params={"service": challenge.service, "scope": scope},
                auth=(self.user, self.password),
            )
        )
        if r.status_code != httpx.codes.OK:
            raise StatusError(r.status_code)

        return decode_token(r.content)

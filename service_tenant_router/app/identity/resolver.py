"""
Tenant identification for inbound requests.

Resolution is pure parsing over the request: no network or store access.
Strategies run in a fixed order and the first hit wins:

1. subdomain  (kerala.example.com)
2. header     (X-Tenant-ID)
3. path       (/kerala/voters)
4. surface-specific fallback: ``?tenant=`` on the edge, the stored session
   token in the client library
"""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Mapping, Optional, Protocol, Tuple

import jwt

from shared.logging import get_logger


RESERVED_SUBDOMAINS = frozenset({"www", "app", "api", "admin"})
TENANT_SEGMENT_RE = re.compile(r"^[a-z0-9-]+$")
TENANT_SLUG_RE = re.compile(r"^[a-z][a-z0-9-]{2,49}$")

TENANT_HEADER = "x-tenant-id"
TENANT_QUERY_PARAM = "tenant"

logger = get_logger("router.identity")


class IdentificationMethod(str, Enum):
    """How the tenant slug was found."""
    SUBDOMAIN = "subdomain"
    HEADER = "header"
    PATH = "path"
    QUERY = "query"
    TOKEN = "token"


class DeploymentSurface(str, Enum):
    """Where the resolver runs; decides the fourth fallback."""
    EDGE = "edge"
    CLIENT = "client"


@dataclass(frozen=True)
class TenantIdentification:
    """Result of a successful identification. Never persisted."""
    method: IdentificationMethod
    raw_value: str
    tenant_slug: str


@dataclass(frozen=True)
class InboundRequest:
    """The parts of a request the resolver looks at.

    Header names are stored lower-cased.
    """
    host: str = ""
    path: str = "/"
    headers: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_starlette(cls, request) -> "InboundRequest":
        return cls(
            host=request.headers.get("host", "") or "",
            path=request.url.path,
            headers={key.lower(): value for key, value in request.headers.items()},
            query=dict(request.query_params),
        )

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())


class SessionTokenStore(Protocol):
    """Client-side storage holding the tenant session token or slug."""

    def get_session_token(self) -> Optional[str]: ...


class InMemorySessionStore:
    """Session storage for the client library and tests."""

    def __init__(self, token: Optional[str] = None):
        self._token = token

    def get_session_token(self) -> Optional[str]:
        return self._token

    def set_tenant_for_session(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


def _strip_port(host: str) -> str:
    host = host.strip()
    if host.startswith("["):
        end = host.find("]")
        return host[1:end] if end != -1 else ""
    if host.count(":") == 1:
        return host.split(":", 1)[0]
    return host


def _is_ip_address(hostname: str) -> bool:
    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return True


def extract_tenant_from_subdomain(host: str) -> Optional[str]:
    """Return the tenant label of ``host``, or None.

    ``kerala.example.com`` -> ``kerala``; ``app.example.com`` -> None;
    ``kerala.localhost:5173`` -> ``kerala``; IP literals never match.
    """
    hostname = _strip_port(host or "").lower().rstrip(".")
    if not hostname or _is_ip_address(hostname):
        return None

    labels = hostname.split(".")
    if any(not label for label in labels):
        return None

    if labels[-1] == "localhost":
        required = 2
    else:
        required = 3

    if len(labels) < required:
        return None

    candidate = labels[0]
    if candidate in RESERVED_SUBDOMAINS or not TENANT_SEGMENT_RE.match(candidate):
        return None
    return candidate


def extract_tenant_from_header(headers: Mapping[str, str]) -> Optional[str]:
    value = headers.get(TENANT_HEADER)
    if value is None:
        value = headers.get("X-Tenant-ID")
    if not value or not value.strip():
        return None
    return value.strip().lower()


def extract_tenant_from_path(path: str) -> Optional[str]:
    """First path segment when it looks like a slug (``/kerala/voters``)."""
    segments = [segment for segment in (path or "").split("/") if segment]
    if segments and TENANT_SEGMENT_RE.match(segments[0]):
        return segments[0]
    return None


def extract_tenant_from_token(token: str) -> Optional[str]:
    """Tenant claim of a session token, or the stored value itself when it is a bare slug.

    The signature is not checked here; the token was already validated by
    whoever stored it.
    """
    token = (token or "").strip()
    if not token:
        return None

    if token.count(".") != 2:
        return token.lower() if TENANT_SEGMENT_RE.match(token.lower()) else None

    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as exc:
        logger.debug("Unreadable session token", error=str(exc))
        return None

    tenant = payload.get("tenantId") or payload.get("tenant_id")
    if not isinstance(tenant, str) or not tenant.strip():
        return None
    return tenant.strip().lower()


def is_valid_tenant_slug(slug: str) -> bool:
    """Lowercase, starts with a letter, 3-50 characters."""
    return bool(TENANT_SLUG_RE.match(slug or ""))


def generate_tenant_slug(name: str) -> str:
    """Derive a slug from a display name."""
    slug = re.sub(r"[^a-z0-9\s-]", "", name.lower())
    slug = re.sub(r"\s+", "-", slug.strip())
    slug = re.sub(r"-+", "-", slug)
    return slug[:50]


class IdentityResolver:
    """Prioritized strategy chain turning a request into a tenant slug."""

    def __init__(
        self,
        surface: DeploymentSurface = DeploymentSurface.EDGE,
        session_store: Optional[SessionTokenStore] = None,
    ):
        if surface is DeploymentSurface.CLIENT and session_store is None:
            raise ValueError("client surface needs a session token store")

        self.surface = surface
        self.session_store = session_store

        self._extractors: Dict[IdentificationMethod, Callable[[InboundRequest], Optional[Tuple[str, str]]]] = {
            IdentificationMethod.SUBDOMAIN: self._by_subdomain,
            IdentificationMethod.HEADER: self._by_header,
            IdentificationMethod.PATH: self._by_path,
            IdentificationMethod.QUERY: self._by_query,
            IdentificationMethod.TOKEN: self._by_token,
        }
        missing = set(IdentificationMethod) - set(self._extractors)
        if missing:
            raise RuntimeError(f"no extractor for {sorted(m.value for m in missing)}")

        fallback = IdentificationMethod.QUERY if surface is DeploymentSurface.EDGE else IdentificationMethod.TOKEN
        self.chain: Tuple[IdentificationMethod, ...] = (
            IdentificationMethod.SUBDOMAIN,
            IdentificationMethod.HEADER,
            IdentificationMethod.PATH,
            fallback,
        )

    def resolve(self, request: InboundRequest) -> Optional[TenantIdentification]:
        """Return the first successful identification, or None."""
        for method in self.chain:
            found = self._extractors[method](request)
            if found:
                raw_value, slug = found
                return TenantIdentification(method=method, raw_value=raw_value, tenant_slug=slug)
        return None

    def _by_subdomain(self, request: InboundRequest) -> Optional[Tuple[str, str]]:
        slug = extract_tenant_from_subdomain(request.host)
        return (request.host, slug) if slug else None

    def _by_header(self, request: InboundRequest) -> Optional[Tuple[str, str]]:
        slug = extract_tenant_from_header(request.headers)
        return (request.header(TENANT_HEADER) or "", slug) if slug else None

    def _by_path(self, request: InboundRequest) -> Optional[Tuple[str, str]]:
        slug = extract_tenant_from_path(request.path)
        return (request.path, slug) if slug else None

    def _by_query(self, request: InboundRequest) -> Optional[Tuple[str, str]]:
        value = (request.query.get(TENANT_QUERY_PARAM) or "").strip()
        return (value, value.lower()) if value else None

    def _by_token(self, request: InboundRequest) -> Optional[Tuple[str, str]]:
        if self.session_store is None:
            return None
        token = self.session_store.get_session_token()
        slug = extract_tenant_from_token(token or "")
        return (token, slug) if slug else None

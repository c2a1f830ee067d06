"""Connection and behaviour options for the CouchDB transport."""

import os
import re
import warnings
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from couchlog.core.provisioning import ProvisioningPolicy

DEFAULT_NAME = "couchdb"
DEFAULT_DB = "winston"
DEFAULT_HOST = "localhost"
DEFAULT_PORT = 5984
DEFAULT_TIMEOUT = 30.0

_SCHEME_RE = re.compile(r"^https?:", re.IGNORECASE)
_SECURE_SCHEME_RE = re.compile(r"^https:", re.IGNORECASE)

_TRUTHY = {"1", "true", "yes", "on"}


def resolve_host(host: str | None) -> str:
    """Return host with a scheme, defaulting to ``http://localhost``."""
    if host and _SCHEME_RE.match(host):
        return host
    return f"http://{host or DEFAULT_HOST}"


def _coerce_auth(auth: Any) -> tuple[str, str] | None:
    if auth is None:
        return None
    if isinstance(auth, Mapping):
        return (str(auth.get("username", "")), str(auth.get("password", "")))
    username, password = auth
    return (str(username), str(password))


@dataclass(frozen=True)
class CouchDBTransportOptions:
    """Resolved transport options.

    Attributes:
        name: Name the transport is known by.
        db: Database receiving log documents.
        host: Server host, always including a scheme.
        port: Server port.
        auth: Optional (username, password) credentials.
        secure: Whether TLS certificates are verified.
        silent: Suppress all writes.
        timeout: HTTP timeout in seconds.
        provisioning_policy: How queries wait on view provisioning.
    """

    name: str = DEFAULT_NAME
    db: str = DEFAULT_DB
    host: str = f"http://{DEFAULT_HOST}"
    port: int = DEFAULT_PORT
    auth: tuple[str, str] | None = None
    secure: bool = False
    silent: bool = False
    timeout: float = DEFAULT_TIMEOUT
    provisioning_policy: ProvisioningPolicy = ProvisioningPolicy.AWAIT

    @property
    def url(self) -> str:
        return f"{self.host}:{self.port}"

    @classmethod
    def from_options(cls, **options: Any) -> "CouchDBTransportOptions":
        """Resolve loosely specified options.

        Accepts the deprecated aliases ``database`` (for ``db``) and ``ssl``
        (for ``secure``). Legacy ``user``/``pass`` (or ``password``) build
        ``auth`` when no ``auth`` is given.
        """
        if "database" in options:
            warnings.warn(
                "'database' is deprecated, use 'db'", DeprecationWarning, stacklevel=2
            )
        if "ssl" in options:
            warnings.warn(
                "'ssl' is deprecated, use 'secure'", DeprecationWarning, stacklevel=2
            )

        host = resolve_host(options.get("host"))
        auth = _coerce_auth(options.get("auth"))
        if auth is None and options.get("user"):
            password = options.get("pass", options.get("password")) or ""
            auth = (str(options["user"]), str(password))

        policy = options.get("provisioning_policy", ProvisioningPolicy.AWAIT)
        if isinstance(policy, str):
            policy = ProvisioningPolicy(policy)

        return cls(
            name=options.get("name") or DEFAULT_NAME,
            db=options.get("db") or options.get("database") or DEFAULT_DB,
            host=host,
            port=int(options.get("port") or DEFAULT_PORT),
            auth=auth,
            secure=bool(_SECURE_SCHEME_RE.match(host))
            or bool(options.get("ssl") or options.get("secure")),
            silent=bool(options.get("silent", False)),
            timeout=float(options.get("timeout") or DEFAULT_TIMEOUT),
            provisioning_policy=policy,
        )

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, **overrides: Any
    ) -> "CouchDBTransportOptions":
        """Resolve options from ``COUCHLOG_*`` environment variables.

        Reads COUCHLOG_HOST, COUCHLOG_PORT, COUCHLOG_DB, COUCHLOG_USER,
        COUCHLOG_PASSWORD and COUCHLOG_SECURE. Keyword overrides win.
        """
        env = os.environ if environ is None else environ
        options: dict[str, Any] = {
            "host": env.get("COUCHLOG_HOST"),
            "port": env.get("COUCHLOG_PORT"),
            "db": env.get("COUCHLOG_DB"),
            "user": env.get("COUCHLOG_USER"),
            "password": env.get("COUCHLOG_PASSWORD"),
            "secure": env.get("COUCHLOG_SECURE", "").lower() in _TRUTHY,
        }
        options.update(overrides)
        return cls.from_options(**options)

"""Domain allowlist for navigation targets.

Every restricted tool call passes its target URL through `DomainGuard`
before a browser is launched. A hostname is accepted when it equals an
approved domain or is a subdomain of one.
"""

import logging
import re
from typing import FrozenSet, Iterable, Optional
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

DEFAULT_APPROVED_DOMAINS = (
    "example.com",
    "httpbin.org",
    "jsonplaceholder.typicode.com",
    "wikipedia.org",
    "en.wikipedia.org",
)

ALLOWED_SCHEMES = ("http", "https")

# Hostnames a browser resolves the same way urlsplit reports them
_HOSTNAME = re.compile(r"[a-z0-9_.-]+")


class DomainNotAllowedError(PermissionError):
    """Raised when a target URL falls outside the approved domains."""

    def __init__(self, url: str, approved: Iterable[str]):
        self.url = url
        self.approved = tuple(approved)
        super().__init__(
            "Access denied: URL not in approved domains. "
            f"Approved domains: {', '.join(self.approved)}"
        )


def parse_domain_list(value: Optional[str]) -> tuple[str, ...]:
    """Split a comma separated domain list, dropping blanks."""
    if not value:
        return DEFAULT_APPROVED_DOMAINS
    domains = [d.strip().lower() for d in value.split(",")]
    return tuple(d for d in domains if d) or DEFAULT_APPROVED_DOMAINS


class DomainGuard:
    """Read-only set of approved hostname suffixes."""

    def __init__(self, domains: Iterable[str] = DEFAULT_APPROVED_DOMAINS):
        # Keep the configured order for error messages
        self._ordered = tuple(dict.fromkeys(d.lower() for d in domains))
        self._domains: FrozenSet[str] = frozenset(self._ordered)

    @property
    def domains(self) -> tuple[str, ...]:
        return self._ordered

    def validate(self, url: str) -> bool:
        """Return True when the URL's hostname is approved.

        Unparsable input yields False instead of raising.
        """
        try:
            parts = urlsplit(url)
            hostname = parts.hostname
        except (TypeError, ValueError, AttributeError):
            return False

        if parts.scheme.lower() not in ALLOWED_SCHEMES or not hostname:
            return False
        # Browsers read a backslash in the authority as a path separator
        if "\\" in parts.netloc:
            return False

        hostname = hostname.lower()
        if not _HOSTNAME.fullmatch(hostname):
            return False
        return any(
            hostname == domain or hostname.endswith("." + domain)
            for domain in self._domains
        )

    def check(self, url: str) -> None:
        """Raise `DomainNotAllowedError` unless `validate(url)` holds."""
        if not self.validate(url):
            logger.warning("Blocked navigation to non-approved URL: %s", url)
            raise DomainNotAllowedError(url, self._ordered)

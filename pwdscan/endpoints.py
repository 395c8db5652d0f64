from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional

import httpx

from pwdscan.types import ErrorCategory, ScanError

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-3.5-turbo"


def normalize_base_url(host: Optional[str]) -> str:
    """
    Turn a user-supplied host into an absolute base URL.

    An empty host selects the public OpenAI endpoint; a host without a
    scheme is assumed to be https.
    """
    if not host:
        return DEFAULT_BASE_URL
    host = host.strip()
    if not host.startswith(("http://", "https://")):
        host = f"https://{host}"
    try:
        url = httpx.URL(host)
    except (httpx.InvalidURL, ValueError) as exc:
        raise ScanError(ErrorCategory.CONFIGURATION, f"invalid host URL {host!r}: {exc}")
    if not url.host:
        raise ScanError(ErrorCategory.CONFIGURATION, f"invalid host URL {host!r}: missing host")
    return str(url).rstrip("/")


@dataclass(frozen=True)
class EndpointSpec:
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    headers: Dict[str, str] = field(default_factory=dict)
    api_key: Optional[str] = None
    timeout: float = 120.0  # per request, seconds

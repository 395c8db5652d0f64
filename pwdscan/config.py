"""
Scan configuration.

Everything environment-dependent is resolved once, here, into a
``ScanSettings`` object that is passed down explicitly. Nothing below this
layer reads ``os.environ``.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence

from pwdscan.endpoints import DEFAULT_MODEL, EndpointSpec, normalize_base_url
from pwdscan.types import ErrorCategory, ScanError

API_KEY_ENV = "OPENAI_API_KEY"

# RFC 9110 token and field-value characters; httpx encodes headers as ASCII
_HEADER_NAME = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")
_HEADER_VALUE = re.compile(r"[\t\x20-\x7e]*")


def header_name(env_name: str) -> str:
    return env_name.replace("_", "-")


def load_extra_headers(
    env_names: Sequence[str], environ: Optional[Mapping[str, str]] = None
) -> Dict[str, str]:
    """
    Resolve forwarded headers: env var ``X_TENANT_ID`` becomes header
    ``X-TENANT-ID`` with the variable's value.

    Raises:
        ScanError: CONFIGURATION if any named variable is unset or empty, or
            if the resulting header name or value cannot be sent.
    """
    env = os.environ if environ is None else environ
    headers: Dict[str, str] = {}
    for name in env_names:
        value = env.get(name, "")
        if not value:
            raise ScanError(ErrorCategory.CONFIGURATION, f"environment variable {name} is not set")
        key = header_name(name)
        if not _HEADER_NAME.fullmatch(key):
            raise ScanError(ErrorCategory.CONFIGURATION, f"invalid header name {key!r} from {name}")
        if not _HEADER_VALUE.fullmatch(value):
            # never echo the value
            raise ScanError(
                ErrorCategory.CONFIGURATION,
                f"environment variable {name} holds characters not allowed in a header",
            )
        headers[key] = value
    return headers


@dataclass
class ScanSettings:
    root: str
    endpoint: EndpointSpec
    concurrency: int = 8
    timeout: Optional[float] = None  # global deadline, seconds
    max_rounds: int = 1
    prompts_path: Optional[Path] = None
    role: str = "security"

    def validate(self) -> None:
        if self.concurrency < 1:
            raise ScanError(ErrorCategory.CONFIGURATION, "concurrency must be at least 1")
        if self.max_rounds < 1:
            raise ScanError(ErrorCategory.CONFIGURATION, "max rounds must be at least 1")
        if self.timeout is not None and self.timeout <= 0:
            raise ScanError(ErrorCategory.CONFIGURATION, "timeout must be positive")
        if not os.path.exists(self.root):
            raise ScanError(ErrorCategory.CONFIGURATION, f"failed to access root path: {self.root}")


def build_settings(
    root: str,
    host: Optional[str] = None,
    model: Optional[str] = None,
    env_names: Sequence[str] = (),
    concurrency: int = 8,
    timeout: Optional[float] = None,
    max_rounds: int = 1,
    prompts_path: Optional[str] = None,
    role: str = "security",
    environ: Optional[Mapping[str, str]] = None,
) -> ScanSettings:
    """Build and validate settings; every failure is a CONFIGURATION error."""
    env = os.environ if environ is None else environ
    endpoint = EndpointSpec(
        base_url=normalize_base_url(host),
        model=model or DEFAULT_MODEL,
        headers=load_extra_headers(env_names, env),
        api_key=env.get(API_KEY_ENV) or None,
    )
    settings = ScanSettings(
        root=root,
        endpoint=endpoint,
        concurrency=concurrency,
        timeout=timeout,
        max_rounds=max_rounds,
        prompts_path=Path(prompts_path) if prompts_path else None,
        role=role,
    )
    settings.validate()
    return settings

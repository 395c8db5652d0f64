"""
Prompt templates keyed by reviewer role.

Templates live in a YAML file with a top-level ``role`` mapping; each
template holds exactly one ``{file_content}`` placeholder.
"""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional, Union

import yaml

from pwdscan.types import ErrorCategory, ScanError

PLACEHOLDER = "{file_content}"
DEFAULT_PROMPTS_PATH = Path(__file__).with_name("prompts.yaml")


def render(template: str, content: str) -> str:
    count = template.count(PLACEHOLDER)
    if count != 1:
        raise ScanError(
            ErrorCategory.INPUT,
            f"prompt template must contain exactly one {PLACEHOLDER} placeholder, found {count}",
        )
    return template.replace(PLACEHOLDER, content)


class PromptLoader:
    """
    Lazily loads and caches role templates.

    Failures are not cached, so a template file fixed mid-run is picked up
    by the next task.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path else DEFAULT_PROMPTS_PATH
        self._roles: Optional[Dict[str, str]] = None

    def _read(self) -> Dict[str, str]:
        try:
            data = yaml.safe_load(self.path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ScanError(ErrorCategory.INPUT, f"failed to read prompt file {self.path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ScanError(ErrorCategory.INPUT, f"failed to parse prompt file {self.path}: {exc}") from exc

        roles = data.get("role") if isinstance(data, dict) else None
        if not isinstance(roles, dict):
            raise ScanError(ErrorCategory.INPUT, f"prompt file {self.path} has no 'role' mapping")
        return {str(k): v for k, v in roles.items() if isinstance(v, str)}

    def load(self, role: str) -> str:
        if self._roles is None:
            self._roles = self._read()
        template = self._roles.get(role)
        if template is None:
            raise ScanError(ErrorCategory.INPUT, f"role {role} not found in configuration")
        return template

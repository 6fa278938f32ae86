"""Per-agent model and output-token limits with optional YAML overrides."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

SONNET = "claude-sonnet-4-5-20250929"
OPUS = "claude-opus-4-6-20250910"
HAIKU = "claude-haiku-4-5-20251001"


class AgentName(str, Enum):
    """Identifiers recorded in the ``agent_runs`` audit table."""
    SPEC = "spec"
    PLANNER = "planner"
    CONTRACT_TEST = "contract_test"
    IMPLEMENTER = "implementer"
    SECURITY_REVIEW = "security_review"
    CODE_REVIEW = "code_review"
    ALIGNMENT_REVIEW = "alignment_review"
    TITLE = "title"


@dataclass(frozen=True)
class AgentConfig:
    """Model and token ceiling for one agent."""

    model: str
    max_tokens: int


AGENT_CONFIGS: dict[AgentName, AgentConfig] = {
    AgentName.SPEC: AgentConfig(model=SONNET, max_tokens=12000),
    AgentName.PLANNER: AgentConfig(model=SONNET, max_tokens=16000),
    AgentName.CONTRACT_TEST: AgentConfig(model=SONNET, max_tokens=12000),
    AgentName.IMPLEMENTER: AgentConfig(model=OPUS, max_tokens=128000),
    AgentName.SECURITY_REVIEW: AgentConfig(model=SONNET, max_tokens=8192),
    AgentName.CODE_REVIEW: AgentConfig(model=SONNET, max_tokens=8192),
    AgentName.ALIGNMENT_REVIEW: AgentConfig(model=HAIKU, max_tokens=500),
    AgentName.TITLE: AgentConfig(model=HAIKU, max_tokens=50),
}


def load_agent_configs(path: Path | str | None = None) -> dict[AgentName, AgentConfig]:
    """Load agent configuration, overlaying a YAML file on the defaults.

    The file maps agent names to partial settings::

        implementer:
          max_tokens: 64000
        title:
          model: claude-haiku-4-5-20251001

    Unknown agents and unknown keys are silently ignored.

    Args:
        path: Path to the YAML file.  If ``None`` or the file does not
              exist, returns the defaults.

    Returns:
        A new mapping; ``AGENT_CONFIGS`` itself is never mutated.
    """
    configs = dict(AGENT_CONFIGS)
    if path is None:
        return configs

    path = Path(path)
    if not path.exists():
        return configs

    with open(path, "r", encoding="utf-8") as f:
        raw: dict[str, Any] = yaml.safe_load(f) or {}

    def _pick(data: dict[str, Any]) -> dict[str, Any]:
        """Filter *data* to only keys accepted by ``AgentConfig``."""
        valid = {f.name for f in AgentConfig.__dataclass_fields__.values()}
        return {k: v for k, v in data.items() if k in valid}

    for name, overrides in raw.items():
        try:
            agent = AgentName(name)
        except ValueError:
            continue
        if isinstance(overrides, dict):
            configs[agent] = replace(configs[agent], **_pick(overrides))

    return configs

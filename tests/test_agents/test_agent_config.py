"""Tests for per-agent configuration and YAML overrides."""
from __future__ import annotations

from pathlib import Path

import yaml

from src.agents.agent_config import AGENT_CONFIGS, HAIKU, OPUS, AgentName, load_agent_configs


class TestDefaults:
    def test_every_agent_configured(self):
        assert set(AGENT_CONFIGS) == set(AgentName)

    def test_implementer_uses_opus(self):
        assert AGENT_CONFIGS[AgentName.IMPLEMENTER].model == OPUS

    def test_small_agents_use_haiku(self):
        assert AGENT_CONFIGS[AgentName.TITLE].model == HAIKU
        assert AGENT_CONFIGS[AgentName.ALIGNMENT_REVIEW].max_tokens == 500


class TestLoadAgentConfigs:
    def test_none_returns_defaults(self):
        assert load_agent_configs(None) == AGENT_CONFIGS

    def test_missing_file_returns_defaults(self, tmp_path: Path):
        assert load_agent_configs(tmp_path / "absent.yaml") == AGENT_CONFIGS

    def test_partial_override(self, tmp_path: Path):
        path = tmp_path / "agents.yaml"
        path.write_text(yaml.safe_dump({
            "implementer": {"max_tokens": 64000},
            "title": {"model": "custom-model", "temperature": 0.2},
            "unknown_agent": {"max_tokens": 1},
        }), encoding="utf-8")

        configs = load_agent_configs(path)

        assert configs[AgentName.IMPLEMENTER].max_tokens == 64000
        assert configs[AgentName.IMPLEMENTER].model == OPUS
        assert configs[AgentName.TITLE].model == "custom-model"
        assert AGENT_CONFIGS[AgentName.IMPLEMENTER].max_tokens == 128000

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "agents.yaml"
        path.write_text("", encoding="utf-8")
        assert load_agent_configs(path) == AGENT_CONFIGS

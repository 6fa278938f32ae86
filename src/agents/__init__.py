"""Agent runners for the free-text stages and validated code generation."""

from src.agents.agent_config import AGENT_CONFIGS, AgentConfig, AgentName, load_agent_configs
from src.agents.code_runner import CodeRunFailure, CodeRunner, CodeRunResult
from src.agents.runner import AgentRunFailure, AgentRunResult, run_agent

__all__ = [
    "AGENT_CONFIGS",
    "AgentConfig",
    "AgentName",
    "AgentRunFailure",
    "AgentRunResult",
    "CodeRunFailure",
    "CodeRunResult",
    "CodeRunner",
    "load_agent_configs",
    "run_agent",
]

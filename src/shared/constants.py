"""Shared constants used across the pipeline services."""
from __future__ import annotations

# Application version
VERSION: str = "1.0.0"

# Service names
API_SERVICE_NAME: str = "feature-pipeline-api"
WORKER_SERVICE_NAME: str = "feature-pipeline-worker"

# Database settings
DB_BUSY_TIMEOUT_MS: int = 30000

# Provider wire protocol
ANTHROPIC_API_URL: str = "https://api.anthropic.com"
ANTHROPIC_VERSION: str = "2023-06-01"
ANTHROPIC_EXTENDED_OUTPUT_BETA: str = "output-128k-2025-02-19"
DEFAULT_MODEL: str = "claude-sonnet-4-5-20250929"

# Secret names
API_KEY_SECRET_NAME: str = "anthropic_key"

# Stuck-job recovery
STUCK_THRESHOLD_MINUTES: int = 10
SWEEP_INTERVAL_SECONDS: int = 60

# Queue delivery
QUEUE_MAX_RETRIES: int = 3
QUEUE_CONCURRENCY: int = 4

"""Database schema initialization for the pipeline store."""
from __future__ import annotations

from src.shared.db.connection import ConnectionPool


def init_pipeline_db(pool: ConnectionPool) -> None:
    """Initialize the jobs, secrets, artifacts and audit tables."""
    conn = pool.get()
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS jobs (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            title TEXT NOT NULL DEFAULT '',
            status TEXT NOT NULL DEFAULT 'drafting'
                CHECK(status IN (
                    'drafting', 'spec_generating', 'spec_ready',
                    'plan_generating', 'plan_ready',
                    'tests_generating', 'tests_ready',
                    'implementing', 'review', 'done', 'failed'
                )),
            brief_markdown TEXT,
            spec_markdown TEXT,
            plan_markdown TEXT,
            tests_markdown TEXT,
            security_review_markdown TEXT,
            code_review_markdown TEXT,
            spec_recommendation TEXT,
            plan_recommendation TEXT,
            tests_recommendation TEXT,
            error_message TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_jobs_owner ON jobs(owner_id);
        CREATE INDEX IF NOT EXISTS idx_jobs_status_updated ON jobs(status, updated_at);

        CREATE TABLE IF NOT EXISTS user_secrets (
            owner_id TEXT NOT NULL,
            name TEXT NOT NULL,
            secret TEXT NOT NULL,
            description TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            PRIMARY KEY (owner_id, name)
        );

        CREATE TABLE IF NOT EXISTS artifacts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            job_id TEXT NOT NULL REFERENCES jobs(id) ON DELETE CASCADE,
            owner_id TEXT NOT NULL,
            artifact_type TEXT NOT NULL DEFAULT 'implementation'
                CHECK(artifact_type IN ('implementation', 'test', 'review')),
            file_path TEXT NOT NULL,
            storage_key TEXT NOT NULL,
            size_bytes INTEGER NOT NULL DEFAULT 0,
            content_hash TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            UNIQUE(job_id, file_path)
        );
        CREATE INDEX IF NOT EXISTS idx_artifacts_job ON artifacts(job_id);

        CREATE TABLE IF NOT EXISTS agent_runs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            job_id TEXT NOT NULL,
            owner_id TEXT NOT NULL,
            agent_name TEXT NOT NULL,
            status TEXT NOT NULL CHECK(status IN ('success', 'failed')),
            input_tokens INTEGER NOT NULL DEFAULT 0,
            output_tokens INTEGER NOT NULL DEFAULT 0,
            error_message TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        );
        CREATE INDEX IF NOT EXISTS idx_agent_runs_job ON agent_runs(job_id);
    """)
    conn.commit()

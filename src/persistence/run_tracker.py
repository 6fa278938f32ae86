"""Agent run recorder -- writes one audit row per model call to SQLite."""
from __future__ import annotations

import logging

from src.shared.db.connection import ConnectionPool
from src.shared.models.jobs import AgentRun
from src.shared.utils import now_iso

logger = logging.getLogger(__name__)


class AgentRunRecorder:
    """Records agent runs in the ``agent_runs`` table.

    Every public method is independently try/excepted so that an
    ``AgentRunRecorder`` failure **never** raises into the pipeline.

    Args:
        pool: Shared connection pool.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(self, run: AgentRun) -> None:
        """Record one agent run."""
        try:
            conn = self._pool.get()
            conn.execute(
                """INSERT INTO agent_runs
                   (job_id, owner_id, agent_name, status, input_tokens,
                    output_tokens, error_message, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    run.job_id,
                    run.owner_id,
                    run.agent_name,
                    run.status,
                    run.input_tokens,
                    run.output_tokens,
                    run.error_message,
                    now_iso(),
                ),
            )
            conn.commit()
        except Exception as exc:
            logger.warning("AgentRunRecorder.record failed (non-blocking): %s", exc)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_for_job(self, job_id: str) -> list[AgentRun]:
        """Return the job's audit rows, oldest first."""
        try:
            rows = self._pool.get().execute(
                """SELECT job_id, owner_id, agent_name, status, input_tokens,
                          output_tokens, error_message, created_at
                   FROM agent_runs
                   WHERE job_id = ?
                   ORDER BY id""",
                (job_id,),
            ).fetchall()
            return [AgentRun.model_validate(dict(r)) for r in rows]
        except Exception as exc:
            logger.warning("AgentRunRecorder.list_for_job failed (non-blocking): %s", exc)
            return []

    def token_totals(self, job_id: str) -> dict[str, int]:
        """Return summed input and output tokens for the job."""
        try:
            row = self._pool.get().execute(
                """SELECT COALESCE(SUM(input_tokens), 0) AS input_tokens,
                          COALESCE(SUM(output_tokens), 0) AS output_tokens
                   FROM agent_runs WHERE job_id = ?""",
                (job_id,),
            ).fetchone()
            return {"input_tokens": row["input_tokens"], "output_tokens": row["output_tokens"]}
        except Exception as exc:
            logger.warning("AgentRunRecorder.token_totals failed (non-blocking): %s", exc)
            return {"input_tokens": 0, "output_tokens": 0}

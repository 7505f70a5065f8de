"""
Session Store - terminal session and comparison records.

Layout:
  {base_path}/sessions/session_YYYYMMDD_HHMMSS_{uuid}/state.json
  {base_path}/comparisons/comparison_YYYYMMDD_HHMMSS_{uuid}.json

Consumers that missed progress events reconcile with these records.
"""

import asyncio
import logging
import shutil
from pathlib import Path

from contextflow.schemas.comparison import ComparisonRun
from contextflow.schemas.session import ExecutionSession
from contextflow.utils.io import atomic_write, validate_key

logger = logging.getLogger(__name__)


class SessionStore:
    """File storage for ExecutionSession and ComparisonRun records."""

    def __init__(self, base_path: Path):
        """
        Initialize session store.

        Args:
            base_path: Base path for storage (e.g., ~/.contextflow/storage)
        """
        self.base_path = Path(base_path)
        self.sessions_dir = self.base_path / "sessions"
        self.comparisons_dir = self.base_path / "comparisons"

    def get_session_path(self, session_id: str) -> Path:
        validate_key(session_id)
        return self.sessions_dir / session_id

    def get_state_path(self, session_id: str) -> Path:
        return self.get_session_path(session_id) / "state.json"

    def get_comparison_path(self, comparison_id: str) -> Path:
        validate_key(comparison_id)
        return self.comparisons_dir / f"{comparison_id}.json"

    async def write_session(self, session: ExecutionSession) -> None:
        """
        Atomically write state.json for a session.

        Uses temp file + rename for crash safety.
        """

        def _write():
            state_path = self.get_state_path(session.session_id)
            state_path.parent.mkdir(parents=True, exist_ok=True)
            with atomic_write(state_path) as f:
                f.write(session.model_dump_json(indent=2))

        await asyncio.to_thread(_write)
        logger.debug(f"Wrote state.json for session {session.session_id}")

    async def read_session(self, session_id: str) -> ExecutionSession | None:
        """Read a session, or None if not found."""

        def _read():
            state_path = self.get_state_path(session_id)
            if not state_path.exists():
                return None
            return ExecutionSession.model_validate_json(state_path.read_text(encoding="utf-8"))

        return await asyncio.to_thread(_read)

    async def list_sessions(
        self,
        status: str | None = None,
        graph_id: str | None = None,
        limit: int = 100,
    ) -> list[ExecutionSession]:
        """
        List sessions, most recent first.

        Args:
            status: Optional status filter (e.g., "completed", "failed")
            graph_id: Optional graph ID filter
            limit: Maximum number of sessions to return
        """

        def _scan():
            sessions = []
            if not self.sessions_dir.exists():
                return sessions

            for session_dir in self.sessions_dir.iterdir():
                if not session_dir.is_dir():
                    continue
                state_path = session_dir / "state.json"
                if not state_path.exists():
                    continue
                try:
                    session = ExecutionSession.model_validate_json(
                        state_path.read_text(encoding="utf-8")
                    )
                except Exception as e:
                    logger.warning(f"Failed to load {state_path}: {e}")
                    continue

                if status and session.status != status:
                    continue
                if graph_id and session.graph_id != graph_id:
                    continue
                sessions.append(session)

            sessions.sort(key=lambda s: s.started_at, reverse=True)
            return sessions[:limit]

        return await asyncio.to_thread(_scan)

    async def delete_session(self, session_id: str) -> bool:
        """Delete a session. Returns False if not found."""

        def _delete():
            session_path = self.get_session_path(session_id)
            if not session_path.exists():
                return False
            shutil.rmtree(session_path)
            logger.info(f"Deleted session {session_id}")
            return True

        return await asyncio.to_thread(_delete)

    async def write_comparison(self, comparison: ComparisonRun) -> None:
        def _write():
            path = self.get_comparison_path(comparison.comparison_id)
            path.parent.mkdir(parents=True, exist_ok=True)
            with atomic_write(path) as f:
                f.write(comparison.model_dump_json(indent=2))

        await asyncio.to_thread(_write)
        logger.debug(f"Wrote comparison {comparison.comparison_id}")

    async def read_comparison(self, comparison_id: str) -> ComparisonRun | None:
        def _read():
            path = self.get_comparison_path(comparison_id)
            if not path.exists():
                return None
            return ComparisonRun.model_validate_json(path.read_text(encoding="utf-8"))

        return await asyncio.to_thread(_read)

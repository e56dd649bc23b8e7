# file: orgtree_runtime/snapshot_repository.py
"""
Snapshot Repository — sqlite3-backed chart documents.

Every committed change of a chart is stored as a new version holding
the full portable document. Versions are 1-based and strictly
increasing per chart; older versions are kept for drift comparison.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

_SCHEMA_PATH = Path(__file__).parent / "schema.sql"


class SnapshotRepository:
    """
    Chart document store backed by sqlite3.

    One connection per repository. ``check_same_thread`` is off because
    the HTTP layer runs sync handlers on a thread pool; callers still
    serialize access per chart.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = str(db_path)
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        schema_sql = _SCHEMA_PATH.read_text(encoding="utf-8")
        self._conn.executescript(schema_sql)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def save_snapshot(
        self,
        chart_id: str,
        document: Optional[dict],
        tree_hash: str = "",
    ) -> int:
        """Append *document* as the next version of *chart_id*. Returns the version."""
        now = datetime.now(timezone.utc).isoformat()
        member_count = _count_members(document)
        with self._conn:
            row = self._conn.execute(
                "SELECT COALESCE(MAX(version), 0) FROM chart_snapshots WHERE chart_id = ?",
                (chart_id,),
            ).fetchone()
            version = row[0] + 1
            self._conn.execute(
                """
                INSERT INTO chart_snapshots
                    (chart_id, version, document_json, tree_hash, member_count, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    chart_id,
                    version,
                    json.dumps(document, ensure_ascii=False),
                    tree_hash,
                    member_count,
                    now,
                ),
            )
        logger.debug("Saved %s v%d (%d members)", chart_id, version, member_count)
        return version

    def delete_chart(self, chart_id: str) -> int:
        """Drop every version of a chart. Returns the number of rows removed."""
        with self._conn:
            cursor = self._conn.execute(
                "DELETE FROM chart_snapshots WHERE chart_id = ?", (chart_id,),
            )
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def load_latest_snapshot(
        self, chart_id: str,
    ) -> Optional[Tuple[int, Optional[dict]]]:
        """
        Load the most recent version of a chart.

        Returns (version, document) or None if the chart was never saved.
        """
        cursor = self._conn.execute(
            """
            SELECT version, document_json
            FROM chart_snapshots
            WHERE chart_id = ?
            ORDER BY version DESC
            LIMIT 1
            """,
            (chart_id,),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return (row[0], json.loads(row[1]))

    def load_snapshot_at(
        self, chart_id: str, version: int,
    ) -> Optional[dict]:
        """
        Load the document at an exact version.
        Returns the document or None.
        """
        cursor = self._conn.execute(
            "SELECT document_json FROM chart_snapshots WHERE chart_id = ? AND version = ?",
            (chart_id, version),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return json.loads(row[0])

    def count_snapshots(self, chart_id: str) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) FROM chart_snapshots WHERE chart_id = ?", (chart_id,),
        ).fetchone()
        return row[0]

    def list_charts(self) -> List[dict]:
        """One entry per chart: latest version, its hash and member count."""
        cursor = self._conn.execute(
            """
            SELECT s.chart_id, s.version, s.tree_hash, s.member_count, s.created_at
            FROM chart_snapshots s
            JOIN (
                SELECT chart_id, MAX(version) AS version
                FROM chart_snapshots
                GROUP BY chart_id
            ) latest
              ON latest.chart_id = s.chart_id AND latest.version = s.version
            ORDER BY s.chart_id
            """
        )
        return [
            {
                "chart_id": row[0],
                "latest_version": row[1],
                "tree_hash": row[2],
                "member_count": row[3],
                "updated_at": row[4],
            }
            for row in cursor.fetchall()
        ]

    def close(self) -> None:
        self._conn.close()


def _count_members(document: Optional[dict]) -> int:
    if not document:
        return 0
    count = 0
    stack = [document] + list(document.get("detached", []))
    while stack:
        node = stack.pop()
        count += 1
        stack.extend(node.get("reports", []))
    return count

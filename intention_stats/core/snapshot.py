"""
Snapshot I/O for exported session data.

Reads JSON snapshots produced by the data-access layer and writes report
JSON next to them. Both sides hold a FileLock on the target so a concurrent
exporter never hands the analyzer a half-written file.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Tuple, Union

from filelock import FileLock

from .exceptions import SnapshotError
from .records import Coverage, Session, normalize_sessions

logger = logging.getLogger(__name__)


def _get_lock(file_path: Path) -> FileLock:
    """Get a file lock for atomic operations."""
    return FileLock(str(file_path) + '.lock')


def _session_documents(data: Any, source: Path) -> List[Dict[str, Any]]:
    """
    Pull the list of session documents out of a parsed snapshot.

    Accepted shapes:
        [ {session}, ... ]
        {"sessions": [ {session}, ... ]}
        {"sessions": {"<session id>": {session}, ...}}
        {"<session id>": {session}, ...}   (keyed export; id is injected)
    """
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        sessions = data.get('sessions')
        if isinstance(sessions, list):
            return sessions
        if isinstance(sessions, dict):
            data = sessions
        if data and all(isinstance(v, dict) for v in data.values()):
            docs = []
            for session_id, doc in sorted(data.items()):
                doc = dict(doc)
                doc.setdefault('id', session_id)
                docs.append(doc)
            return docs
    raise SnapshotError(
        f"{source}: expected a list of sessions or a mapping of session documents"
    )


def load_snapshot(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """
    Read raw session documents from a snapshot file.

    Raises:
        SnapshotError: If the file is missing, not JSON, or has the wrong shape
    """
    path = Path(path)
    if not path.exists():
        raise SnapshotError(f"Snapshot not found: {path}")

    with _get_lock(path):
        try:
            data = json.loads(path.read_text(encoding='utf-8'))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise SnapshotError(f"Invalid JSON in {path}: {e}")

    docs = _session_documents(data, path)
    logger.info("Loaded %d session documents from %s", len(docs), path)
    return docs


def load_sessions(path: Union[str, Path]) -> Tuple[List[Session], Coverage]:
    """Read a snapshot and normalize it into canonical Sessions."""
    return normalize_sessions(load_snapshot(path))


def write_report(report: Dict[str, Any], path: Union[str, Path]):
    """
    Write a JSON-safe report dict.

    Raises:
        SnapshotError: If the report holds NaN/Infinity or non-JSON values
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        text = json.dumps(report, indent=2, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise SnapshotError(f"Report is not JSON-serializable: {e}")

    with _get_lock(path):
        path.write_text(text)
    logger.info("Wrote report to %s", path)

"""
Path generation for report storage.
All paths are relative to ARTIFACT_ROOT.
"""

import hashlib
import re
from pathlib import Path

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


def safe_document_id(document_id: str) -> str:
    """
    Document ids are caller-owned; keep them from escaping the store root.
    Ids that had to be rewritten get a short digest of the original so that
    "a/b" and "a_b" never share a directory.
    """
    raw = str(document_id)
    cleaned = _UNSAFE.sub("_", raw).strip(".")
    if cleaned and cleaned == raw:
        return cleaned
    digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()[:8]
    return f"{cleaned or '_'}-{digest}"


def quality_report_path(document_id: str, run_id: str) -> str:
    """Path for one run's extraction result JSON."""
    return f"{safe_document_id(document_id)}/quality/{run_id}.json"


def latest_report_path(document_id: str) -> str:
    """Path for the most recent extraction result JSON."""
    return f"{safe_document_id(document_id)}/quality/latest.json"


def ensure_parent_dirs(artifact_root: str, relative_path: str) -> Path:
    """Create parent directories and return the full absolute path."""
    full_path = Path(artifact_root) / relative_path
    full_path.parent.mkdir(parents=True, exist_ok=True)
    return full_path

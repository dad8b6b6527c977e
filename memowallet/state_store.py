# -----------------------------------------------------------------------------
# Project: MemoWallet v0.1
# File:    state_store.py
# (c)      2025-2026 Wolfgang Lohmann
# License: MIT
# -----------------------------------------------------------------------------

# state_store.py
'''
File-backed workflow state.

Three records (wallet identity, posted memo, indexer snapshot) live at fixed
file names in the state directory. Next to each record a small marker file
holds the stage status and a checksum of the record, so that "never ran"
(no marker) is distinguishable from "record damaged" (marker present but the
record is missing or does not match its checksum).

There is no cross-process locking of the workflow as a whole: two runs against
the same state directory can still race on identity creation or post the memo
twice. Run one workflow per state directory at a time.
'''

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Union

import portalocker
from portalocker import LOCK_EX
from bsv.hash import sha256

from memowallet import core_defs
from memowallet.core_defs import NotFoundError, StorageError

logger = logging.getLogger(__name__)

MARKER_SUFFIX = ".state"

Record = Union[Dict[str, Any], str]


class StateStore:
    """
    Presence-checked, overwrite-on-write persistence for the workflow records.
    """

    def __init__(self, state_dir: Union[str, Path], network_name: str = "test"):
        self.state_dir = Path(state_dir)
        self.network_name = network_name
        self.paths = {
            core_defs.KIND_IDENTITY: self.state_dir / f"wallet_{network_name}.json",
            core_defs.KIND_MEMO: self.state_dir / f"memo_{network_name}.json",
            core_defs.KIND_INDEXER_SNAPSHOT: self.state_dir / f"indexer_{network_name}.json",
        }
        self.report_path = self.state_dir / f"wallet-info_{network_name}.txt"

    def path_for(self, kind: str) -> Path:
        if kind not in self.paths:
            raise ValueError(f"Unknown record kind '{kind}'. Use one of {core_defs.RECORD_KINDS}.")
        return self.paths[kind]

    def _marker_path(self, kind: str) -> Path:
        record_path = self.path_for(kind)
        return record_path.with_name(record_path.name + MARKER_SUFFIX)

    # region --- low level file access ---

    def _write_file(self, path: Path, content: bytes):
        """Writes via a locked temp file and an atomic rename."""
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            os.makedirs(path.parent, exist_ok=True)
            with open(tmp_path, 'wb') as f:
                portalocker.lock(f, LOCK_EX)
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except (OSError, portalocker.exceptions.LockException) as e:
            logger.error(f"Could not write {path}: {e}")
            raise StorageError(f"Could not write {path}: {e}") from e

    def _read_file(self, path: Path) -> bytes:
        try:
            with open(path, 'rb') as f:
                portalocker.lock(f, LOCK_EX)
                return f.read()
        except FileNotFoundError:
            raise
        except (OSError, portalocker.exceptions.LockException) as e:
            logger.error(f"Could not read {path}: {e}")
            raise StorageError(f"Could not read {path}: {e}") from e

    def _read_marker(self, kind: str) -> Dict[str, Any] | None:
        try:
            raw = self._read_file(self._marker_path(kind))
        except FileNotFoundError:
            return None
        try:
            marker = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(f"Status marker for '{kind}' is corrupt: {e}") from e
        if marker.get("status") != core_defs.STATUS_COMPLETED:
            raise StorageError(f"Status marker for '{kind}' has unknown status {marker.get('status')!r}")
        return marker

    # endregion

    def status(self, kind: str) -> str:
        """
        Stage status of a record kind.

        Raises StorageError when a record file exists without its marker,
        which means an earlier write was interrupted. Nothing is overwritten
        automatically in that case.
        """
        marker = self._read_marker(kind)
        if marker is not None:
            return core_defs.STATUS_COMPLETED
        if self.path_for(kind).exists():
            raise StorageError(
                f"Found {self.path_for(kind)} without status marker. "
                f"Check the file and remove it or restore its marker before running again.")
        return core_defs.STATUS_NOT_STARTED

    def exists(self, kind: str) -> bool:
        return self.status(kind) == core_defs.STATUS_COMPLETED

    def load(self, kind: str) -> Record:
        """
        Loads a completed record. JSON records come back as dicts, the indexer
        snapshot comes back as the raw text it was saved with.
        """
        marker = self._read_marker(kind)
        path = self.path_for(kind)
        if marker is None:
            if path.exists():
                raise StorageError(f"Found {path} without status marker.")
            raise NotFoundError(f"No completed '{kind}' record at {path}")

        try:
            content = self._read_file(path)
        except FileNotFoundError:
            raise StorageError(f"Status marker says '{kind}' is completed but {path} is missing")

        if sha256(content).hex() != marker.get("sha256"):
            raise StorageError(f"Checksum mismatch for {path}: record was modified or truncated")

        text = content.decode('utf-8')
        if kind == core_defs.KIND_INDEXER_SNAPSHOT:
            return text
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise StorageError(f"Record {path} is not valid JSON: {e}") from e

    def save(self, kind: str, record: Record):
        """
        Writes the record, then its completion marker. Overwrites both.
        """
        path = self.path_for(kind)
        if isinstance(record, str):
            content = record.encode('utf-8')
        else:
            content = json.dumps(record, indent=2).encode('utf-8')

        self._write_file(path, content)
        marker = {
            "kind": kind,
            "status": core_defs.STATUS_COMPLETED,
            "updated_utc": datetime.now(timezone.utc).isoformat(),
            "sha256": sha256(content).hex(),
        }
        self._write_file(self._marker_path(kind), json.dumps(marker, indent=2).encode('utf-8'))
        logger.info(f"{kind} record written to {path}")

    def write_report(self, text: str):
        """Human-readable derivation report."""
        self._write_file(self.report_path, text.encode('utf-8'))
        logger.info(f"Derivation report written to {self.report_path}")

    def describe(self) -> Dict[str, Dict[str, Any]]:
        """Status overview of all record kinds, for display."""
        overview = {}
        for kind in core_defs.RECORD_KINDS:
            try:
                marker = self._read_marker(kind)
                status = self.status(kind)
                overview[kind] = {
                    "status": status,
                    "path": str(self.path_for(kind)),
                    "updated_utc": marker.get("updated_utc") if marker else None,
                }
            except StorageError as e:
                overview[kind] = {"status": "error", "path": str(self.path_for(kind)), "error": str(e)}
        return overview

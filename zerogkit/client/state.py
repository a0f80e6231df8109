"""Per-identity activation records persisted across process restarts."""

import json
import logging
import tempfile
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Optional

from ..defaults import STATE_DIR_NAME, STATE_FILE_NAME

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = Path.home() / STATE_DIR_NAME / STATE_FILE_NAME
FALLBACK_STATE_FILE = Path(tempfile.gettempdir()) / "zerogkit" / STATE_FILE_NAME


def _now_ms() -> int:
    return int(time.time() * 1000)


def _exists(path: Path) -> bool:
    try:
        return path.exists()
    except OSError:
        return False


@dataclass
class ActivationRecord:
    """
    What this machine remembers about one identity.

    Field names match the keys of the JSON file.
    """

    autoDepositCompleted: bool = False
    createdAt: int = 0
    lastUsed: int = 0
    rpcUrl: str = ""
    totalRequests: int = 0

    @classmethod
    def from_json(cls, data: Dict) -> "ActivationRecord":
        return cls(
            autoDepositCompleted=bool(data.get("autoDepositCompleted", False)),
            createdAt=int(data.get("createdAt", 0)),
            lastUsed=int(data.get("lastUsed", 0)),
            rpcUrl=str(data.get("rpcUrl", "")),
            totalRequests=int(data.get("totalRequests", 0)),
        )


class ActivationStore:
    """
    JSON file mapping identity address to `ActivationRecord`.

    The store never raises to its caller. A missing or corrupt file reads as empty,
    an unwritable preferred location falls back to the temp directory, and if that
    fails too the records live in memory for the rest of the process.
    """

    def __init__(self, path: Optional[Path] = None, fallback_path: Optional[Path] = FALLBACK_STATE_FILE):
        self._path: Optional[Path] = Path(path) if path is not None else DEFAULT_STATE_FILE
        self._fallback_path = Path(fallback_path) if fallback_path is not None else None
        self._records: Optional[Dict[str, ActivationRecord]] = None

    @property
    def path(self) -> Optional[Path]:
        """File currently backing the store, or None when running in memory only."""
        return self._path

    def get(self, address: str, rpc_url: str) -> ActivationRecord:
        """Return the record for ``address``, creating and persisting it on first access."""
        records = self._load()
        key = address.lower()
        record = records.get(key)
        if record is None:
            now = _now_ms()
            record = ActivationRecord(createdAt=now, lastUsed=now, rpcUrl=rpc_url)
            records[key] = record
            self._save()
        return record

    def is_activated(self, address: str, rpc_url: str) -> bool:
        return self.get(address, rpc_url).autoDepositCompleted

    def mark_activated(self, address: str, rpc_url: str) -> ActivationRecord:
        record = self.get(address, rpc_url)
        record.autoDepositCompleted = True
        record.lastUsed = _now_ms()
        self._save()
        logger.debug("Activation recorded for %s", address)
        return record

    def record_request(self, address: str, rpc_url: str) -> ActivationRecord:
        # Read-modify-write without a lock: the counter is best-effort telemetry.
        record = self.get(address, rpc_url)
        record.totalRequests += 1
        record.lastUsed = _now_ms()
        record.rpcUrl = rpc_url
        self._save()
        return record

    def _load(self) -> Dict[str, ActivationRecord]:
        if self._records is not None:
            return self._records

        self._records = {}
        if self._path is None:
            return self._records

        # A previous run may have fallen back to the temp location.
        source = self._path
        if not _exists(source) and self._fallback_path is not None and _exists(self._fallback_path):
            source = self._fallback_path
            self._path = self._fallback_path

        try:
            with source.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return self._records
        except (OSError, ValueError) as e:
            logger.warning("Could not read activation state from %s, starting fresh: %s", source, e)
            return self._records

        if not isinstance(data, dict):
            logger.warning("Ignoring malformed activation state in %s", source)
            return self._records

        for address, raw in data.items():
            if not isinstance(raw, dict):
                continue
            try:
                self._records[address.lower()] = ActivationRecord.from_json(raw)
            except (TypeError, ValueError) as e:
                logger.warning("Skipping malformed activation record for %s: %s", address, e)
        return self._records

    def _save(self) -> None:
        if self._path is None or self._records is None:
            return

        payload = {address: asdict(record) for address, record in self._records.items()}
        try:
            self._write(self._path, payload)
            return
        except OSError as e:
            logger.warning("Could not write activation state to %s: %s", self._path, e)

        if self._fallback_path is not None and self._fallback_path != self._path:
            try:
                self._write(self._fallback_path, payload)
                logger.info("Activation state moved to %s", self._fallback_path)
                self._path = self._fallback_path
                return
            except OSError as e:
                logger.warning("Could not write activation state to %s: %s", self._fallback_path, e)

        logger.warning("Keeping activation state in memory only")
        self._path = None

    @staticmethod
    def _write(path: Path, payload: Dict) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        tmp.replace(path)

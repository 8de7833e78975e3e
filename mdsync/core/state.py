"""Sync state ledger for skip-on-unchanged decisions."""

import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


@dataclass
class FileState:
    """State information for a single synced file."""

    last_synced: float  # File mtime as of the last successful sync
    slug: str
    title: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "last_synced": self.last_synced,
            "slug": self.slug,
            "title": self.title,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FileState":
        """Create from dictionary."""
        return cls(
            last_synced=float(data.get("last_synced") or 0),
            slug=data.get("slug", ""),
            title=data.get("title", ""),
        )


@dataclass
class SyncStateData:
    """Complete sync state for all tracked files."""

    version: str = "1.0"
    files: dict[str, FileState] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "version": self.version,
            "files": {k: v.to_dict() for k, v in self.files.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncStateData":
        """Create from dictionary."""
        files = {}
        for filepath, file_data in (data.get("files") or {}).items():
            files[filepath] = FileState.from_dict(file_data)
        return cls(
            version=data.get("version", "1.0"),
            files=files,
        )


class SyncState:
    """Manages the ledger of synced files.

    The ledger only caches timestamps to skip unchanged files; page
    identity always comes from querying the database.
    """

    def __init__(self, state_file: Path) -> None:
        """Initialize state manager.

        Args:
            state_file: Path to the ledger JSON file
        """
        self.state_file = Path(state_file)
        self._state: SyncStateData | None = None

    @property
    def state(self) -> SyncStateData:
        """Get or load the state data."""
        if self._state is None:
            self._state = self._load_state()
        return self._state

    def _load_state(self) -> SyncStateData:
        """Load state from disk or create empty.

        Raises:
            ValueError: If the ledger file is not valid JSON
        """
        if self.state_file.exists():
            with open(self.state_file, encoding="utf-8") as f:
                try:
                    data = json.load(f)
                except json.JSONDecodeError as e:
                    raise ValueError(
                        f"Corrupt sync state file {self.state_file}: {e}. "
                        "Delete it to resync every file."
                    ) from e
            if not isinstance(data, dict):
                raise ValueError(f"Corrupt sync state file {self.state_file}: expected an object")
            return SyncStateData.from_dict(data)
        return SyncStateData()

    def save(self) -> None:
        """Save state to disk."""
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.state_file, "w", encoding="utf-8") as f:
            json.dump(self.state.to_dict(), f, indent=2, ensure_ascii=False)
            f.write("\n")

    def get_file_state(self, filepath: str) -> FileState | None:
        """Get state for a specific file."""
        return self.state.files.get(filepath)

    def needs_sync(self, filepath: str, mtime: float) -> bool:
        """Check whether a file changed since its last successful sync."""
        previous = self.get_file_state(filepath)
        return previous is None or mtime > previous.last_synced

    def record_sync(
        self,
        filepath: str,
        slug: str,
        title: str,
        synced_at: float | None = None,
    ) -> None:
        """Update state after a successful sync."""
        self.state.files[filepath] = FileState(
            last_synced=time.time() if synced_at is None else synced_at,
            slug=slug,
            title=title,
        )

    def remove_file_state(self, filepath: str) -> None:
        """Remove state for a deleted file."""
        self.state.files.pop(filepath, None)

    def list_tracked_files(self) -> list[str]:
        """Get list of all tracked file paths."""
        return list(self.state.files.keys())

    def get_status_summary(self) -> dict[str, Any]:
        """Get a summary of sync state."""
        return {
            "state_file": str(self.state_file),
            "tracked_files": len(self.state.files),
            "files": [
                {
                    "path": path,
                    "slug": state.slug,
                    "title": state.title,
                    "last_sync": (
                        datetime.fromtimestamp(state.last_synced, timezone.utc).isoformat()
                        if state.last_synced else ""
                    ),
                }
                for path, state in self.state.files.items()
            ],
        }

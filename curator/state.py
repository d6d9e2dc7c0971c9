"""
State Management

Tracks which documents the tagging pipeline has already handled.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Dict, Optional, Set

logger = logging.getLogger(__name__)


@dataclass
class TaggerState:
    """Persistent cursor of the tagging pipeline."""
    last_seen_modified: Optional[str] = None  # ISO datetime
    last_seen_ids: Set[int] = field(default_factory=set)  # IDs sharing that timestamp
    total_documents_processed: int = 0
    last_run: Optional[str] = None  # ISO datetime


class StateManager:
    """Manages persistent state for the tagging pipeline."""

    def __init__(self, state_dir: str = '/app/data', name: str = 'tagger'):
        """
        Initialize state manager.

        Args:
            state_dir: Directory for state files
            name: State file stem
        """
        self.state_dir = Path(state_dir)
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self.state_path = self.state_dir / f"state_{name}.json"

        self.lock = Lock()
        self.state = self._load_state()

    def _load_state(self) -> TaggerState:
        """Load state from disk."""
        if not self.state_path.exists():
            logger.info("No existing state file, starting fresh")
            return TaggerState()

        try:
            with open(self.state_path, 'r') as f:
                data = json.load(f)
            data['last_seen_ids'] = set(data.get('last_seen_ids') or [])
            state = TaggerState(**data)
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Failed to load state: {e}, starting fresh")
            return TaggerState()

        logger.info(f"Loaded state: last_seen_modified={state.last_seen_modified}, "
                    f"processed={state.total_documents_processed}")
        return state

    def _save_state(self) -> None:
        """Save state to disk."""
        data = asdict(self.state)
        data['last_seen_ids'] = sorted(data['last_seen_ids'])
        try:
            with open(self.state_path, 'w') as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.error(f"Failed to save state: {e}")
            return
        logger.debug(f"Saved state to {self.state_path}")

    def should_process_document(self, doc_modified: str, doc_id: int) -> bool:
        """
        Check if a document should be processed.

        Args:
            doc_modified: Document's modified datetime (ISO string)
            doc_id: Document ID

        Returns:
            True if the document is newer than the cursor
        """
        with self.lock:
            if self.state.last_seen_modified is None:
                return True
            if doc_modified > self.state.last_seen_modified:
                return True
            if doc_modified == self.state.last_seen_modified:
                return doc_id not in self.state.last_seen_ids
            return False

    def mark_processed(self, doc_modified: str, doc_id: int) -> None:
        """Advance the cursor past one document."""
        with self.lock:
            if self.state.last_seen_modified is None or doc_modified > self.state.last_seen_modified:
                self.state.last_seen_modified = doc_modified
                self.state.last_seen_ids = {doc_id}
            elif doc_modified == self.state.last_seen_modified:
                self.state.last_seen_ids.add(doc_id)

            self.state.total_documents_processed += 1
            self.state.last_run = datetime.now(timezone.utc).isoformat()
            self._save_state()

    def get_stats(self) -> Dict:
        """Get current state statistics."""
        with self.lock:
            return {
                'last_seen_modified': self.state.last_seen_modified,
                'total_documents_processed': self.state.total_documents_processed,
                'last_run': self.state.last_run,
            }

    def reset(self) -> None:
        """Forget the cursor so every document is processed again."""
        with self.lock:
            self.state = TaggerState()
            self._save_state()
            logger.warning("State has been reset")

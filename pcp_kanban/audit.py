"""
Sector moves are shop-floor events: every proposal, confirmation, commit,
failure and cancellation is appended to a JSON-lines audit trail.
"""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)


def utc_stamp() -> str:
    """ISO-8601 UTC timestamp."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class AuditLogger:
    """Appends structured JSON audit entries to a .jsonl file."""

    def __init__(self, log_path: Path):
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, event: str, task_id, **extra):
        """Append one audit entry. Extra kwargs are merged in."""
        entry = {
            "ts": utc_stamp(),
            "event": event,
            "task_id": task_id,
        }
        # Merge extras, filtering None values for cleanliness
        for k, v in extra.items():
            if v is not None:
                entry[k] = v

        try:
            with open(self.log_path, "a") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except OSError as e:
            logger.error(f"Failed to write audit log: {e}")

"""
File-backed draft storage.

One JSON record per form type at ``<directory>/<key_prefix><form_type>.json``.
Expired or corrupt records are treated as "no draft" and removed.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Callable, Optional

from .draft_codec import DraftSnapshot, parse_snapshot
from .exceptions import DraftCorrupt, log_error_with_context
from .form_definition import FormDefinition

logger = logging.getLogger(__name__)

DEFAULT_DRAFTS_DIR = "drafts"
DEFAULT_KEY_PREFIX = "fvu_draft_"


def format_draft_age(timestamp: datetime, now: Optional[datetime] = None) -> str:
    """Human readable age: 'Just now', '5 minutes ago', '1 day ago'."""
    seconds = ((now or datetime.now()) - timestamp).total_seconds()
    minutes = int(seconds // 60)
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{days} day{'s' if days != 1 else ''} ago"
    if hours > 0:
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    if minutes > 0:
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    return "Just now"


class DraftStore:
    """
    Persists DraftSnapshots as JSON files.

    Args:
        definition: Form definition drafts are checked against
        directory: Folder holding the draft files
        key_prefix: File name prefix for draft records
        enabled: When False, saving and loading are no-ops
        now: Callable returning the current datetime, used for expiry
    """

    def __init__(self, definition: FormDefinition, directory: str = DEFAULT_DRAFTS_DIR,
                 key_prefix: str = DEFAULT_KEY_PREFIX, enabled: bool = True,
                 now: Optional[Callable[[], datetime]] = None):
        self.definition = definition
        self.directory = Path(directory)
        self.key_prefix = key_prefix
        self.enabled = enabled
        self.now = now or datetime.now

    @classmethod
    def from_config(cls, definition: FormDefinition, config: Dict[str, Any],
                    now: Optional[Callable[[], datetime]] = None) -> 'DraftStore':
        drafts = config.get('drafts', {})
        return cls(
            definition,
            directory=drafts.get('directory', DEFAULT_DRAFTS_DIR),
            key_prefix=drafts.get('key_prefix', DEFAULT_KEY_PREFIX),
            enabled=drafts.get('enabled', True),
            now=now,
        )

    def path_for(self, form_type: str) -> Path:
        return self.directory / f"{self.key_prefix}{form_type}.json"

    def save(self, snapshot: DraftSnapshot) -> bool:
        """
        Write a snapshot, replacing any previous draft of the same form.

        Returns:
            True if the draft was written
        """
        if not self.enabled:
            return False

        path = self.path_for(snapshot.form_type)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix('.json.tmp')
            with open(tmp_path, 'w', encoding='utf-8') as f:
                f.write(snapshot.to_json())
            tmp_path.replace(path)
        except OSError as e:
            logger.error(f"Failed to save draft {path}: {e}")
            return False

        logger.info(f"Saved draft for '{snapshot.form_type}' to {path}")
        self.cleanup_expired()
        return True

    def _read(self, form_type: str, now: Optional[datetime] = None) -> Optional[DraftSnapshot]:
        path = self.path_for(form_type)
        if not path.exists():
            return None

        try:
            with open(path, 'r', encoding='utf-8') as f:
                snapshot = parse_snapshot(f.read(), self.definition)
        except DraftCorrupt as e:
            log_error_with_context(e, f"loading draft {path}")
            self._remove(path)
            return None
        except OSError as e:
            logger.error(f"Failed to read draft {path}: {e}")
            return None

        if snapshot.is_expired(now or self.now()):
            logger.info(f"Draft for '{form_type}' expired at {snapshot.expires.isoformat()}")
            self._remove(path)
            return None
        return snapshot

    def load(self, form_type: Optional[str] = None, now: Optional[datetime] = None) -> Optional[DraftSnapshot]:
        """
        Load the draft for a form type.

        Returns:
            DraftSnapshot, or None when there is no usable draft
        """
        if not self.enabled:
            return None
        return self._read(form_type or self.definition.form_type, now)

    def has_draft(self, form_type: Optional[str] = None, now: Optional[datetime] = None) -> bool:
        return self.load(form_type, now) is not None

    def draft_age(self, form_type: Optional[str] = None, now: Optional[datetime] = None) -> Optional[str]:
        snapshot = self.load(form_type, now)
        if snapshot is None:
            return None
        return format_draft_age(snapshot.timestamp, now or self.now())

    def clear(self, form_type: Optional[str] = None) -> bool:
        path = self.path_for(form_type or self.definition.form_type)
        return self._remove(path)

    def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        """
        Remove expired or unreadable drafts of every form type.

        Returns:
            Number of files removed
        """
        if not self.directory.exists():
            return 0

        now = now or self.now()
        removed = 0
        for path in self.directory.glob(f"{self.key_prefix}*.json"):
            try:
                snapshot = DraftSnapshot.model_validate_json(path.read_text(encoding='utf-8'))
                expired = snapshot.is_expired(now)
            except (OSError, ValueError) as e:
                logger.warning(f"Removing unreadable draft {path}: {e}")
                expired = True
            if expired and self._remove(path):
                removed += 1

        if removed:
            logger.info(f"Cleaned up {removed} expired draft(s)")
        return removed

    def _remove(self, path: Path) -> bool:
        try:
            if path.exists():
                path.unlink()
                logger.info(f"Removed draft {path}")
            return True
        except OSError as e:
            logger.error(f"Failed to remove draft {path}: {e}")
            return False

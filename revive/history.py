"""Durable memory of which strategy fixed which error pattern."""

import hashlib
import json
import logging
import re
from datetime import datetime
from pathlib import Path

from .config import Config
from .jsonfile import write_json
from .models import FixHistory, HistoricalFix
from .strategies import FixStrategy, same_shape, strategy_from_dict, strategy_to_dict

logger = logging.getLogger(__name__)

# First successful strategy seen for each pattern, shared by every store in
# the process. Entries are never overwritten.
GLOBAL_PATTERNS: dict[str, FixStrategy] = {}


def _encode(value):
    if isinstance(value, datetime):
        return {"__type": "Date", "value": value.isoformat()}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _parse_timestamp(value) -> datetime:
    """Tagged or plain ISO-8601 timestamp as a naive local datetime."""
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise TypeError(f"Expected an ISO-8601 timestamp, got {type(value).__name__}")

    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        # Histories written by this module hold naive local times
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _decode(obj: dict):
    if obj.get("__type") == "Date" and "value" in obj:
        return _parse_timestamp(obj["value"])
    return obj


def history_to_dict(history: FixHistory) -> dict:
    return {
        "repoId": history.repo_id,
        "fixes": [
            {
                "errorPattern": fix.error_pattern,
                "strategy": strategy_to_dict(fix.strategy),
                "successCount": fix.success_count,
                "lastUsed": fix.last_used,
            }
            for fix in history.fixes
        ],
        "lastResurrection": history.last_resurrection,
    }


def history_from_dict(data: dict) -> FixHistory:
    return FixHistory(
        repo_id=data["repoId"],
        fixes=[
            HistoricalFix(
                error_pattern=fix["errorPattern"],
                strategy=strategy_from_dict(fix["strategy"]),
                success_count=int(fix["successCount"]),
                last_used=_parse_timestamp(fix["lastUsed"]),
            )
            for fix in data.get("fixes", [])
        ],
        last_resurrection=_parse_timestamp(data["lastResurrection"]),
    )


class FixHistoryStore:
    """Per-repository fix history, cached in memory and persisted as JSON."""

    def __init__(self, base_dir: str | Path | None = None):
        """Initialize the store.

        Args:
            base_dir: Store every history under this directory instead of
                next to the repository
        """
        self.base_dir = Path(base_dir) if base_dir else None
        self._cache: dict[str, FixHistory] = {}

    def record_fix(self, repo_id: str, error_pattern: str, strategy: FixStrategy) -> None:
        """Record a strategy that fixed ``error_pattern``."""
        history = self.get_history(repo_id)
        now = datetime.now()

        for index, fix in enumerate(history.fixes):
            if fix.error_pattern != error_pattern:
                continue
            if same_shape(fix.strategy, strategy):
                fix.success_count += 1
                fix.last_used = now
            else:
                # Most recent success wins
                history.fixes[index] = HistoricalFix(error_pattern, strategy, 1, now)
            break
        else:
            history.fixes.append(HistoricalFix(error_pattern, strategy, 1, now))

        history.last_resurrection = now
        self._remember_globally(error_pattern, strategy)

    def get_successful_fix(self, error_pattern: str) -> FixStrategy | None:
        """Look up a fix in the global map, then in every cached history."""
        if error_pattern in GLOBAL_PATTERNS:
            return GLOBAL_PATTERNS[error_pattern]

        for history in self._cache.values():
            for fix in history.fixes:
                if fix.error_pattern == error_pattern:
                    return fix.strategy
        return None

    def find_best_fix(self, repo_id: str, error_pattern: str) -> FixStrategy | None:
        """Prefer the repository's own history, then the global map."""
        for fix in self.get_history(repo_id).fixes:
            if fix.error_pattern == error_pattern:
                return fix.strategy
        return GLOBAL_PATTERNS.get(error_pattern)

    def get_history(self, repo_id: str) -> FixHistory:
        if repo_id not in self._cache:
            self._cache[repo_id] = FixHistory(repo_id=repo_id)
        return self._cache[repo_id]

    def get_prioritized_fixes(self, repo_id: str) -> list[HistoricalFix]:
        """Fixes ordered by success count, then most recently used."""
        return sorted(
            self.get_history(repo_id).fixes,
            key=lambda fix: (fix.success_count, fix.last_used),
            reverse=True,
        )

    def save_history(self, repo_id: str, history: FixHistory | None = None) -> None:
        """Overwrite the repository's history file with ``history`` (or the cached one)."""
        history = history or self.get_history(repo_id)
        path = self.history_path(repo_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        write_json(path, history_to_dict(history), default=_encode)
        self._cache[repo_id] = history
        logger.debug("Saved %d fixes for %s to %s", len(history.fixes), repo_id, path)

    def load_history(self, repo_id: str) -> FixHistory | None:
        """Load a repository's history; unreadable files count as no history."""
        if repo_id in self._cache:
            return self._cache[repo_id]

        path = self.history_path(repo_id)
        if not path.exists():
            return None

        try:
            data = json.loads(path.read_text(encoding="utf-8"), object_hook=_decode)
            history = history_from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable fix history %s: %s", path, e)
            return None

        self._cache[repo_id] = history
        for fix in history.fixes:
            self._remember_globally(fix.error_pattern, fix.strategy)
        return history

    def clear_all(self) -> None:
        self._cache.clear()
        GLOBAL_PATTERNS.clear()

    def history_path(self, repo_id: str) -> Path:
        if self.base_dir:
            return self.base_dir / self._sanitize(repo_id) / Config.HISTORY_FILE
        return self._resolve_repo_dir(repo_id) / Config.HISTORY_DIR / Config.HISTORY_FILE

    def _resolve_repo_dir(self, repo_id: str) -> Path:
        if Path(repo_id).exists() or repo_id.startswith(("/", ".")):
            return Path(repo_id)

        # Remote identifiers get a content-addressed directory
        digest = hashlib.sha256(repo_id.encode("utf-8")).hexdigest()[:12]
        return Path.cwd() / Config.HISTORY_DIR / digest

    @staticmethod
    def _sanitize(repo_id: str) -> str:
        return re.sub(r"[^a-zA-Z0-9_-]", "_", repo_id)[:64]

    @staticmethod
    def _remember_globally(error_pattern: str, strategy: FixStrategy) -> None:
        if error_pattern not in GLOBAL_PATTERNS:
            GLOBAL_PATTERNS[error_pattern] = strategy

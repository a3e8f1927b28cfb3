"""
JSONL utilities for reading and writing log files.

Used for replaying recorded raw events and for the optional log of
batches that could not be delivered.
"""

import fcntl
import json
import sys
from pathlib import Path
from typing import Callable, Iterator, List, Optional


class JSONLReader:
    """Read JSONL logs with error handling."""

    @staticmethod
    def iter_log(
        path: Path,
        filter_fn: Optional[Callable[[dict], bool]] = None
    ) -> Iterator[dict]:
        """
        Lazily iterate entries of a JSONL file.

        Malformed lines are reported on stderr and skipped.

        Args:
            path: Path to JSONL file
            filter_fn: Optional filter function (entry) -> bool

        Yields:
            Dict entries in file order
        """
        path = Path(path)
        if not path.exists():
            return

        with open(path, 'r') as f:
            for line_num, line in enumerate(f, 1):
                if not line.strip():
                    continue
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError as e:
                    print(f"Warning: Malformed JSON at {path}:{line_num}: {e}",
                          file=sys.stderr)
                    continue

                if not isinstance(entry, dict):
                    print(f"Warning: Skipping non-object entry at {path}:{line_num}",
                          file=sys.stderr)
                    continue

                if filter_fn and not filter_fn(entry):
                    continue

                yield entry

    @classmethod
    def read_log(
        cls,
        path: Path,
        filter_fn: Optional[Callable[[dict], bool]] = None
    ) -> List[dict]:
        """
        Read a whole JSONL file.

        Args:
            path: Path to JSONL file
            filter_fn: Optional filter function (entry) -> bool

        Returns:
            List of dict entries
        """
        return list(cls.iter_log(path, filter_fn))


class JSONLWriter:
    """Process-safe JSONL appender with file locking."""

    def __init__(self, path: Path):
        """
        Initialize writer.

        Args:
            path: Path to JSONL file
        """
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def append(self, data: dict):
        """
        Atomically append entry to JSONL file.

        Args:
            data: Dictionary to append as JSON line
        """
        with open(self.path, 'a') as f:
            try:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                f.write(json.dumps(data, ensure_ascii=False, default=str) + '\n')
                f.flush()
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)

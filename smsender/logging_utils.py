from __future__ import annotations

import logging
import re
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, Optional


_LOG_FMT = logging.Formatter(
    fmt="%(asctime)s | %(levelname)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

MASK_CHAR = "*"


class MessageType(Enum):
    """Console status line kinds: (prefix, color, logging level)."""

    ERROR = ("[ERROR] ", "red", logging.ERROR)
    WARNING = ("[WARN ] ", "yellow", logging.WARNING)
    SUCCESS = ("[OK   ] ", "green", logging.INFO)
    INFO = ("[INFO ] ", "cyan", logging.INFO)

    @property
    def prefix(self) -> str:
        return self.value[0]

    @property
    def color(self) -> str:
        return self.value[1]

    @property
    def level(self) -> int:
        return self.value[2]


def mask_token(token: str, visible: int = 3) -> str:
    """Show the first `visible` characters, one mask char per remaining character.

    The mask keeps the token's length visible.
    """
    if len(token) <= visible:
        return token
    return token[:visible] + MASK_CHAR * (len(token) - visible)


def sanitize_settings(settings: Dict[str, object]) -> Dict[str, object]:
    """Return a copy with sensitive values masked and Paths normalized to str.

    Any key containing token/password/secret/key is masked.
    """
    redacted: Dict[str, object] = {}
    for k, v in (settings or {}).items():
        key_l = str(k).lower()
        if any(s in key_l for s in ("token", "password", "secret", "apikey", "api_key", "key")):
            redacted[k] = "***"
            continue
        if isinstance(v, Path):
            redacted[k] = str(v)
        else:
            redacted[k] = v
    return redacted


def format_kv(d: Dict[str, object]) -> str:
    """Format a dict as compact k=v pairs suitable for single-line logs."""
    parts = []
    for k, v in d.items():
        if v is None or v == "":
            continue
        s = str(v)
        if re.search(r"\s", s):
            s = f'"{s}"'
        parts.append(f"{k}={s}")
    return " ".join(parts)


def _configure_root_logger(log_path: Path) -> None:
    log_path.parent.mkdir(parents=True, exist_ok=True)
    root = logging.getLogger()
    root.setLevel(logging.INFO)
    # Clear existing handlers to avoid duplicates
    for h in list(root.handlers):
        root.removeHandler(h)
        if isinstance(h, logging.FileHandler):
            h.close()
    fh = logging.FileHandler(str(log_path), encoding="utf-8")
    fh.setFormatter(_LOG_FMT)
    root.addHandler(fh)


def init_run_logging(
    *,
    base_dir: Path,
    log_file: Optional[Path] = None,
) -> Path:
    """Initialize per-run logging and return the log file path.

    - If log_file is provided, the root logger writes there.
    - Otherwise a timestamped <base_dir>/run_<timestamp>.log is created.

    Raises OSError when the log file cannot be opened.
    """
    if log_file is None:
        log_file = base_dir / f"run_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    _configure_root_logger(Path(log_file))
    return Path(log_file)


def prune_old_runs(base_dir: Path, keep: int = 5) -> None:
    """Remove oldest run_*.log files under base_dir beyond the `keep` most recent."""
    try:
        if not base_dir.exists():
            return
        log_files = [p for p in base_dir.glob("run_*.log") if p.is_file()]
        log_files.sort(key=lambda p: p.stat().st_mtime, reverse=True)
        for old in log_files[keep:]:
            try:
                old.unlink()
            except OSError:
                # Best-effort cleanup; ignore files that cannot be deleted
                pass
    except OSError:
        pass

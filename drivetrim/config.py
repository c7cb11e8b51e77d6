from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .drive import DEFAULT_API_BASE, DEFAULT_UPLOAD_BASE

TOKEN_ENV = "DRIVETRIM_TOKEN"
CONFIG_DIR_ENV = "DRIVETRIM_CONFIG_DIR"


class ConfigStore:
    """
    Simple JSON config store.

    Default location: ~/.drivetrim/config.json (or $DRIVETRIM_CONFIG_DIR).
    """

    def __init__(self, root_dir: Path) -> None:
        self.root_dir = Path(root_dir)
        self.path = self.root_dir / "config.json"

    @staticmethod
    def default() -> "ConfigStore":
        override = os.environ.get(CONFIG_DIR_ENV, "").strip()
        if override:
            return ConfigStore(Path(override))
        return ConfigStore(Path.home() / ".drivetrim")

    def load(self) -> Dict[str, Any]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if isinstance(data, dict):
                return {**self.default_config(), **data}
        except FileNotFoundError:
            return self.default_config()
        except (OSError, ValueError):
            # Corrupted file; don't crash the app.
            return self.default_config()
        return self.default_config()

    def save(self, data: Dict[str, Any]) -> None:
        self.root_dir.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")

    def default_config(self) -> Dict[str, Any]:
        return {
            "api_base": DEFAULT_API_BASE,
            "upload_base": DEFAULT_UPLOAD_BASE,
            "output_folder_id": "",
            "request_timeout_sec": 60,
            "progress_tick_sec": 0.5,
            "temp_dir": "",
            "last_file_id": "",
        }

    def _str(self, key: str) -> str:
        raw = self.load().get(key, "")
        return str(raw or "").strip()

    def _float(self, key: str, default: float, lo: float, hi: float) -> float:
        raw = self.load().get(key, default)
        try:
            v = float(raw)
        except (TypeError, ValueError):
            v = default
        if v != v:  # NaN
            v = default
        return max(lo, min(hi, v))

    def api_base(self) -> str:
        return self._str("api_base") or DEFAULT_API_BASE

    def upload_base(self) -> str:
        return self._str("upload_base") or DEFAULT_UPLOAD_BASE

    def output_folder_id(self) -> Optional[str]:
        return self._str("output_folder_id") or None

    def request_timeout_sec(self) -> float:
        return self._float("request_timeout_sec", 60.0, 5.0, 3600.0)

    def progress_tick_sec(self) -> float:
        # Clamp: a tiny tick would flood the UI with updates.
        return self._float("progress_tick_sec", 0.5, 0.1, 5.0)

    def temp_dir(self) -> Optional[Path]:
        raw = self._str("temp_dir")
        return Path(raw).expanduser() if raw else None

    def access_token(self) -> Optional[str]:
        return os.environ.get(TOKEN_ENV, "").strip() or None

    def last_file_id(self) -> str:
        return self._str("last_file_id")

    def set_last_file_id(self, file_id: str) -> None:
        fid = str(file_id or "").strip()
        if not fid:
            return
        cfg = self.load()
        cfg["last_file_id"] = fid
        self.save(cfg)

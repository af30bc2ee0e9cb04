import os
import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def ensure_dir(path: str):
    if path:
        Path(path).mkdir(parents=True, exist_ok=True)


def save_raw_json(data: Any, out_path: str) -> bool:
    """
    Write ``data`` as indented JSON, replacing ``out_path`` in one step.

    A failed write leaves any previous snapshot at ``out_path`` intact.
    """
    tmp_path = out_path + ".tmp"
    try:
        ensure_dir(os.path.dirname(out_path))
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, out_path)
    except (OSError, TypeError, ValueError) as e:
        logger.error(f"Error saving snapshot to {out_path}: {e}")
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        return False
    logger.debug(f"Snapshot written to {out_path}")
    return True

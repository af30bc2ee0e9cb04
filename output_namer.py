import os
import logging
from typing import Set

from models import Batch, OutputIdentity

logger = logging.getLogger(__name__)

FILENAME_PREFIX = "readwise"
FILENAME_EXTENSION = ".epub"


def _safe_filename_part(name: str) -> str:
    return name.replace("/", "-").replace("\\", "-")


class OutputNamer:
    """
    Hand out collision-free output names within one output directory.

    Assumes a single writer: names are checked against files on disk and
    against names already handed out during this run.
    """

    def __init__(self, output_dir: str):
        self.output_dir = output_dir
        self.claimed: Set[str] = set()

    def _is_taken(self, filename: str) -> bool:
        return filename in self.claimed or os.path.exists(
            os.path.join(self.output_dir, filename)
        )

    def name(self, batch: Batch) -> OutputIdentity:
        base = _safe_filename_part(batch.name)
        filename = f"{FILENAME_PREFIX}-{base}{FILENAME_EXTENSION}"
        title = batch.name

        num = 1
        while self._is_taken(filename):
            num += 1
            filename = f"{FILENAME_PREFIX}-{base}-{num}{FILENAME_EXTENSION}"
            title = f"{batch.name} Pt. {num}"

        if num > 1:
            logger.debug(f"Name for '{batch.name}' taken, using {filename}")

        self.claimed.add(filename)
        return OutputIdentity(filename=filename, title=title)

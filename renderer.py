#!/usr/bin/env python3
"""
Renderer Module for Readwise EPUB Tool
Turns a list of article URLs into one e-book by running percollate.
"""

import logging
import subprocess
from dataclasses import dataclass
from typing import List, Optional

from models import OutputIdentity
from storage import ensure_dir

logger = logging.getLogger(__name__)

DEFAULT_RENDER_COMMAND = "percollate"
DEFAULT_AUTHOR = "readwise"
DEFAULT_OUTPUT_FORMAT = "epub"


@dataclass
class RenderOutcome:
    filename: str
    ok: bool
    returncode: Optional[int] = None
    error: Optional[str] = None


def prepare_output_dir(path: str) -> str:
    """Create the output directory if needed. Safe to call repeatedly."""
    ensure_dir(path)
    return path


class DryRunRenderer:
    """Log what would be rendered without running anything."""

    def render(self, identity: OutputIdentity, urls: List[str]) -> RenderOutcome:
        logger.info(f"[dry run] {identity.filename} ({identity.title}): {len(urls)} URLs")
        for url in urls:
            logger.debug(f"[dry run]   {url}")
        return RenderOutcome(filename=identity.filename, ok=True)


class PercollateRenderer:
    """Run the percollate CLI once per batch inside the output directory."""

    def __init__(
        self,
        output_dir: str,
        command: str = DEFAULT_RENDER_COMMAND,
        author: str = DEFAULT_AUTHOR,
        output_format: str = DEFAULT_OUTPUT_FORMAT,
    ):
        self.output_dir = output_dir
        self.command = command
        self.author = author
        self.output_format = output_format

    def build_command(self, identity: OutputIdentity, urls: List[str]) -> List[str]:
        return [
            self.command,
            self.output_format,
            "--output",
            identity.filename,
            "--title",
            identity.title,
            "--author",
            self.author,
            *urls,
        ]

    def render(self, identity: OutputIdentity, urls: List[str]) -> RenderOutcome:
        """
        Render one batch. Output streams go straight to the terminal.

        Failures are logged and returned, never raised, so the caller can
        carry on with the next batch.
        """
        cmd = self.build_command(identity, urls)
        try:
            result = subprocess.run(
                cmd,
                cwd=self.output_dir,
                stdin=subprocess.DEVNULL,
                check=False,
            )
        except (OSError, ValueError) as e:
            logger.error(f"Could not start {self.command} for {identity.filename}: {e}")
            return RenderOutcome(filename=identity.filename, ok=False, error=str(e))

        if result.returncode != 0:
            logger.error(
                f"{self.command} exited with status {result.returncode} "
                f"while creating {identity.filename}"
            )
            return RenderOutcome(
                filename=identity.filename,
                ok=False,
                returncode=result.returncode,
                error=f"exit status {result.returncode}",
            )

        return RenderOutcome(filename=identity.filename, ok=True, returncode=0)

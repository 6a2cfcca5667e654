"""
Wrapper around Microsoft's IntuneWinAppUtil.exe.

The tool is treated as a black box::

    IntuneWinAppUtil.exe -c "<applicationFolder>" -s "<setupFile>" -o "<outputFolder>" -q

Exit code 0 means a ``.intunewin`` container now sits in the output folder.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import List

from ..errors import ConverterError, PreconditionError

logger = logging.getLogger(__name__)

CONTAINER_SUFFIX = ".intunewin"


class IntuneWinConverter:
    def __init__(self, tool_path: str, timeout: float = 60 * 60):
        self.tool_path = tool_path
        self.timeout = timeout

    def _resolve_tool(self) -> str:
        resolved = shutil.which(self.tool_path) or (self.tool_path if Path(self.tool_path).is_file() else None)
        if not resolved:
            raise PreconditionError(f"IntuneWinAppUtil.exe not found at: {self.tool_path}", self.tool_path)
        return resolved

    def build_command(self, tool: str, application_folder: Path, setup_file: Path, output_folder: Path) -> List[str]:
        return [tool, "-c", str(application_folder), "-s", str(setup_file), "-o", str(output_folder), "-q"]

    def convert(self, application_folder: str | Path, setup_file: str | Path, output_folder: str | Path) -> None:
        """Run the converter; raises on missing inputs or a non-zero exit code."""
        application_folder = Path(application_folder)
        setup_file = Path(setup_file)
        output_folder = Path(output_folder)

        tool = self._resolve_tool()
        if not application_folder.is_dir():
            raise PreconditionError(f"Application folder not found: {application_folder}", str(application_folder))
        if not setup_file.is_file():
            raise PreconditionError(f"Setup file not found: {setup_file}", str(setup_file))

        output_folder.mkdir(parents=True, exist_ok=True)
        command = self.build_command(tool, application_folder, setup_file, output_folder)
        logger.info("Running converter: %s", " ".join(command))

        result = subprocess.run(
            command,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
            timeout=self.timeout,
        )
        if result.returncode != 0:
            output = result.stderr if (result.stderr or "").strip() else result.stdout
            logger.error("IntuneWinAppUtil failed with exit code %s: %s", result.returncode, output)
            raise ConverterError(result.returncode, (output or "").strip())

        logger.info("Created .intunewin file in %s", output_folder)

    def locate_container(self, output_folder: str | Path) -> Path:
        """Newest ``*.intunewin`` in *output_folder*."""
        output_folder = Path(output_folder)
        candidates = sorted(
            (p for p in output_folder.glob(f"*{CONTAINER_SUFFIX}") if p.is_file()),
            key=lambda p: p.stat().st_mtime,
            reverse=True,
        )
        if not candidates:
            raise PreconditionError(
                f"No {CONTAINER_SUFFIX} file found after conversion in: {output_folder}", str(output_folder)
            )
        logger.info("Found .intunewin file: %s", candidates[0].name)
        return candidates[0]

"""
Transactional output writing.
"""

import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Union

logger = logging.getLogger(__name__)


def write_outputs(
    outputs: Dict[str, str],
    output_path: Union[str, Path],
    format_command: Optional[List[str]] = None,
) -> List[Path]:
    """
    Write `outputs` (relative path -> text) below `output_path`.

    Everything is staged in a sibling directory first and then moved into
    place, so a failure while writing leaves the output directory untouched.
    """
    output = Path(output_path).resolve()
    output.parent.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(prefix=f".{output.name}-", dir=output.parent))
    written: List[Path] = []
    try:
        for relative, text in outputs.items():
            staged = staging / relative
            staged.parent.mkdir(parents=True, exist_ok=True)
            staged.write_text(text)
        for relative in outputs:
            target = output / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            os.replace(staging / relative, target)
            logger.info("Wrote %s", target)
            written.append(target)
    finally:
        shutil.rmtree(staging, ignore_errors=True)

    if format_command:
        result = subprocess.run(
            list(format_command) + [str(output)], capture_output=True, text=True
        )
        if result.returncode != 0:
            logger.warning(
                "%s exited with %d: %s",
                format_command[0],
                result.returncode,
                result.stderr.strip(),
            )
    return written

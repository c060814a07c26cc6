"""
Atomic JSON file writes, used for rescue files on shutdown.
"""

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

import structlog

logger = structlog.get_logger(__name__)


def _write_and_replace(temp_path: Path, target: Path, content: str) -> None:
    with open(temp_path, "w", encoding="utf-8") as fh:
        fh.write(content)
        fh.flush()
        os.fsync(fh.fileno())
    os.replace(temp_path, target)


async def atomic_json_dump(data: Any, path: Path, timeout: float = 5.0) -> bool:
    """
    Write ``data`` as JSON to ``path`` through a temp file and ``os.replace``.

    Returns:
        True if the file was written, False otherwise. Failures are logged,
        not raised, and never leave a partial file at ``path``.
    """
    path = Path(path)
    temp_path: Optional[Path] = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            content = json.dumps(data, indent=2, ensure_ascii=False, default=str)
        except (TypeError, ValueError) as e:
            logger.warning("Cannot serialize data to JSON", path=str(path), error=str(e))
            return False

        fd, name = tempfile.mkstemp(dir=path.parent, prefix=f".atomic_{path.name}.", suffix=".tmp")
        os.close(fd)
        temp_path = Path(name)

        loop = asyncio.get_running_loop()
        await asyncio.wait_for(loop.run_in_executor(None, _write_and_replace, temp_path, path, content), timeout)
        return True
    except asyncio.TimeoutError:
        logger.warning("Atomic write timed out", path=str(path), timeout=timeout)
        return False
    except OSError as e:
        logger.warning("Atomic write failed", path=str(path), error=str(e))
        return False
    finally:
        if temp_path is not None and temp_path.exists():
            temp_path.unlink(missing_ok=True)

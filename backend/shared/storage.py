"""Storage abstraction for per-guild JSON resources.

Each guild gets its own directory under the data root; resources are small
JSON documents (saved games, event state, cached card data). Files are
written atomically with owner-only permissions (0o600) inside owner-only
directories (0o700).
"""

import contextlib
import os
import tempfile
from pathlib import Path
from typing import Protocol

import structlog

logger = structlog.get_logger()

_DIR_MODE = 0o700

_FILE_MODE = 0o600


class ResourceStorage(Protocol):
    """Protocol for reading and writing guild-scoped text resources."""

    def exists(self, guild_id: str, filename: str) -> bool: ...

    def read(self, guild_id: str, filename: str) -> str | None: ...

    def write(self, guild_id: str, filename: str, content: str) -> None: ...


class GuildResourceStorage:
    """Stores resources as files in ``<data_dir>/<guild_id>/<filename>``.

    Global resources (not tied to a guild) use the ``global`` directory.
    """

    GLOBAL = "global"

    def __init__(self, data_dir: str | Path) -> None:
        self._data_dir = Path(data_dir).resolve()

    def _resolve(self, guild_id: str, filename: str) -> Path:
        guild_dir = (self._data_dir / guild_id).resolve()
        target = (guild_dir / filename).resolve()
        if guild_dir.parent != self._data_dir or target.parent != guild_dir:
            raise ValueError(f"Path traversal rejected: '{guild_id}/{filename}' resolves outside data directory")
        return target

    def exists(self, guild_id: str, filename: str) -> bool:
        return self._resolve(guild_id, filename).is_file()

    def read(self, guild_id: str, filename: str) -> str | None:
        """Return the resource content, or None when it does not exist yet."""
        target = self._resolve(guild_id, filename)
        if not target.is_file():
            return None
        return target.read_text(encoding="utf-8")

    def write(self, guild_id: str, filename: str, content: str) -> None:
        """Atomically replace the resource content (temp file then rename)."""
        target = self._resolve(guild_id, filename)
        guild_dir = target.parent
        guild_dir.mkdir(mode=_DIR_MODE, parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=str(guild_dir), suffix=".tmp", prefix=f".{target.name}_")
        fd_owned = True
        try:
            with os.fdopen(fd, "wb") as f:
                fd_owned = False  # os.fdopen took ownership; it will close fd
                f.write(content.encode("utf-8"))
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, _FILE_MODE)  # noqa: PTH101
            Path(tmp_path).replace(target)
        except BaseException:
            if fd_owned:
                with contextlib.suppress(OSError):
                    os.close(fd)
            with contextlib.suppress(OSError):
                Path(tmp_path).unlink()
            raise
        logger.debug("saved guild resource", guild_id=guild_id, filename=filename)

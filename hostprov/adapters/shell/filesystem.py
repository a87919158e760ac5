"""
Filesystem adapter — file and directory changes with receipts.

Writes are atomic (temp file in the target directory, then rename) so a
half-written vhost or cron file never reaches the services that read
them.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

from hostprov.adapters.base import CommandAdapter, ExecutionContext
from hostprov.core.models.action import Receipt

logger = logging.getLogger(__name__)


class FilesystemAdapter(CommandAdapter):
    """File and directory operations.

    Action params:
        operation (str): write, mkdir, symlink, append_line, chown, chmod, remove.
        path (str): Target path (absolute on the host).
        content (str): File content (write).
        line (str): Line to ensure (append_line).
        target (str): Link target (symlink).
        mode (int): Permission bits (write, mkdir, chmod).
        owner / group (str): Ownership (write, mkdir, chown).
        recursive (bool): Apply chown to the whole tree.
    """

    operations = frozenset({"write", "mkdir", "symlink", "append_line", "chown", "chmod", "remove"})
    required_params = {
        "write": ("path",),
        "mkdir": ("path",),
        "symlink": ("path", "target"),
        "append_line": ("path", "line"),
        "chown": ("path", "owner"),
        "chmod": ("path", "mode"),
        "remove": ("path",),
    }

    def __init__(self, root: Path = Path("/"), **kwargs):
        super().__init__(**kwargs)
        self._root = Path(root)

    @property
    def name(self) -> str:
        return "filesystem"

    def is_available(self) -> bool:
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        ok, error = super().validate(context)
        if ok and context.param("operation") == "write" and "content" not in context.params:
            return False, "Missing required param: 'content' for write"
        return ok, error

    def _path(self, raw: str) -> Path:
        return self._root / raw.lstrip("/")

    def _done(self, context: ExecutionContext, output: str) -> Receipt:
        logger.debug("%s", output)
        return Receipt.success(adapter=self.name, action_id=context.action.id, output=output)

    # ── Operations ──────────────────────────────────────────────

    def _op_write(self, context: ExecutionContext) -> Receipt:
        target = self._path(context.param("path"))
        target.parent.mkdir(parents=True, exist_ok=True)
        content = context.param("content")

        fd, tmp_path = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
        tmp = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.chmod(tmp, context.param("mode", 0o644))
            self._chown(tmp, context.param("owner"), context.param("group"))
            tmp.replace(target)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
        return self._done(context, f"Wrote {len(content)} bytes to {target}")

    def _op_mkdir(self, context: ExecutionContext) -> Receipt:
        target = self._path(context.param("path"))
        target.mkdir(parents=True, exist_ok=True)
        if context.param("mode") is not None:
            os.chmod(target, context.param("mode"))
        self._chown(target, context.param("owner"), context.param("group"))
        return self._done(context, f"Directory ready: {target}")

    def _op_symlink(self, context: ExecutionContext) -> Receipt:
        link = self._path(context.param("path"))
        target = context.param("target")
        if link.is_symlink():
            link.unlink()
        elif link.is_dir():
            # an empty placeholder directory may be replaced, anything else may not
            if any(link.iterdir()):
                return Receipt.failure(
                    adapter=self.name,
                    action_id=context.action.id,
                    error=f"Refusing to replace non-empty directory {link} with a symlink",
                )
            link.rmdir()
        elif link.exists():
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Refusing to replace existing file {link} with a symlink",
            )
        link.parent.mkdir(parents=True, exist_ok=True)
        link.symlink_to(target)
        return self._done(context, f"Linked {link} -> {target}")

    def _op_append_line(self, context: ExecutionContext) -> Receipt:
        target = self._path(context.param("path"))
        line = context.param("line").rstrip("\n")
        existing = target.read_text(encoding="utf-8") if target.is_file() else ""
        if line in existing.splitlines():
            return Receipt.skip(self.name, context.action.id, reason=f"Line already in {target}")
        prefix = "" if not existing or existing.endswith("\n") else "\n"
        with target.open("a", encoding="utf-8") as f:
            f.write(f"{prefix}{line}\n")
        return self._done(context, f"Appended line to {target}")

    def _op_chown(self, context: ExecutionContext) -> Receipt:
        target = self._path(context.param("path"))
        owner, group = context.param("owner"), context.param("group")
        self._chown(target, owner, group)
        count = 1
        if context.param("recursive") and target.is_dir():
            for dirpath, dirnames, filenames in os.walk(target):
                for name in dirnames + filenames:
                    self._chown(Path(dirpath) / name, owner, group)
                    count += 1
        return self._done(context, f"Changed ownership of {count} paths under {target}")

    def _op_chmod(self, context: ExecutionContext) -> Receipt:
        target = self._path(context.param("path"))
        os.chmod(target, context.param("mode"))
        return self._done(context, f"Mode {context.param('mode'):o} on {target}")

    def _op_remove(self, context: ExecutionContext) -> Receipt:
        target = self._path(context.param("path"))
        if target.is_symlink() or target.is_file():
            target.unlink()
        elif target.is_dir():
            shutil.rmtree(target)
        else:
            return Receipt.skip(self.name, context.action.id, reason=f"{target} does not exist")
        return self._done(context, f"Removed {target}")

    @staticmethod
    def _chown(target: Path, owner: str | None, group: str | None) -> None:
        if owner or group:
            shutil.chown(target, user=owner, group=group)

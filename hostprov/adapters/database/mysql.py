"""
MySQL / MariaDB adapter.

SQL is always passed on stdin and the root password through
``MYSQL_PWD``, so neither shows up in the process list or in logs.

Setting the root password depends on the server: ``ALTER USER`` exists
from MariaDB 10.2 / MySQL 5.7, older servers only know ``SET PASSWORD``.
``set_root_password`` asks the client for its version once and issues
exactly one of the two statements.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from hostprov.adapters.base import CommandAdapter, ExecutionContext
from hostprov.core.models.action import Receipt

logger = logging.getLogger(__name__)

_DISTRIB_RE = re.compile(r"Distrib\s+(\d+)\.(\d+)")
_VER_RE = re.compile(r"Ver\s+(\d+)\.(\d+)")


def supports_alter_user(version_output: str) -> bool:
    """Whether the server behind ``mysql --version`` accepts ALTER USER."""
    # MariaDB and MySQL 5.x report the server version after "Distrib"
    match = _DISTRIB_RE.search(version_output) or _VER_RE.search(version_output)
    if not match:
        return True
    major, minor = int(match.group(1)), int(match.group(2))
    if "MariaDB" in version_output:
        return (major, minor) >= (10, 2)
    return (major, minor) >= (5, 7)


def quote(value: str) -> str:
    """SQL string literal."""
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


class MySQLAdapter(CommandAdapter):
    """Run SQL as the database root user.

    Action params:
        operation (str): set_root_password, sql, dump, load.
        password (SecretStr): Root password to set (set_root_password).
        root_password (SecretStr): Current root password (sql, dump, load).
        statements (str | SecretStr): SQL to run (sql).
        database (str): Database name (dump, load).
        path (str): Dump file (dump, load).
    """

    tool = "mysql"
    operations = frozenset({"set_root_password", "sql", "dump", "load"})
    required_params = {
        "set_root_password": ("password",),
        "sql": ("statements",),
        "dump": ("database", "path"),
        "load": ("database", "path"),
    }

    @property
    def name(self) -> str:
        return "mysql"

    @staticmethod
    def _auth_env(context: ExecutionContext) -> dict[str, str] | None:
        password = context.secret("root_password")
        return {"MYSQL_PWD": password} if password else None

    def _op_set_root_password(self, context: ExecutionContext) -> Receipt:
        version = self.run(context, ["mysql", "--version"])
        if version.not_found:
            return Receipt.missing_dependency(self.name, context.action.id, "mysql")

        password = quote(context.secret("password"))
        if supports_alter_user(version.stdout):
            statement = f"ALTER USER 'root'@'localhost' IDENTIFIED BY {password};"
        else:
            statement = f"SET PASSWORD FOR 'root'@'localhost' = PASSWORD({password});"
        logger.info("Setting database root password")
        return self.run_receipt(
            context,
            ["mysql", "-u", "root"],
            input_text=statement + "\nFLUSH PRIVILEGES;\n",
            env=self._auth_env(context),
        )

    def _op_sql(self, context: ExecutionContext) -> Receipt:
        return self.run_receipt(
            context,
            ["mysql", "-u", "root"],
            input_text=context.secret("statements"),
            env=self._auth_env(context),
        )

    def _op_dump(self, context: ExecutionContext) -> Receipt:
        path = context.param("path")
        return self.run_receipt(
            context,
            [
                "mysqldump", "-u", "root", "--single-transaction",
                f"--result-file={path}", context.param("database"),
            ],
            env=self._auth_env(context),
        )

    def _op_load(self, context: ExecutionContext) -> Receipt:
        path = Path(context.param("path"))
        if not path.is_file():
            return Receipt.failure(self.name, context.action.id, error=f"Dump not found: {path}")
        return self.run_receipt(
            context,
            ["mysql", "-u", "root", context.param("database")],
            input_text=path.read_text(encoding="utf-8"),
            env=self._auth_env(context),
        )

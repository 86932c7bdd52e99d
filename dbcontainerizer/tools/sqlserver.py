"""A SQL Server engine running as a background child process, queried through sqlcmd."""
from __future__ import annotations

import os
import subprocess
from pathlib import Path

import psutil

from ..capabilities import ConnectionInfo, ProbeResult, Row
from ..messages import INFO, WARN
from ..run import run


SQLSERVR: Path = Path("/opt/mssql/bin/sqlservr")
SQLCMD: Path = Path("/opt/mssql-tools18/bin/sqlcmd")
SEPARATOR: str = "|"


def parse_rows(text: str, separator: str = SEPARATOR) -> list[Row]:
    """Split headerless, whitespace-trimmed sqlcmd output into rows.

    Parameters
    ----------
    text : str
        The raw stdout of a query run with `-s "|" -W -h -1`.
    separator : str, optional
        The column separator.

    Returns
    -------
    list[Row]
        One tuple of column values per non-empty line, with surrounding whitespace
        stripped from each value.

    Examples
    --------
    >>> parse_rows("Sales_Data|/x/Sales.mdf|D\\nSales_Log|/x/Sales.ldf|L\\n")
    [('Sales_Data', '/x/Sales.mdf', 'D'), ('Sales_Log', '/x/Sales.ldf', 'L')]
    """
    rows: list[Row] = []
    for line in text.splitlines():
        if not line.strip():
            continue
        rows.append(tuple(col.strip() for col in line.split(separator)))
    return rows


class SqlServer:
    """Controls the lifetime of a single `sqlservr` process and runs queries against
    it.

    Parameters
    ----------
    connection : ConnectionInfo
        Login details.  The `database` field is the default database for queries
        that do not name one.
    executable : Path, optional
        The engine binary.
    sqlcmd : Path, optional
        The query tool.
    """

    def __init__(
        self,
        connection: ConnectionInfo,
        *,
        executable: Path = SQLSERVR,
        sqlcmd: Path = SQLCMD,
    ) -> None:
        self.connection = connection
        self.executable = executable
        self.sqlcmd = sqlcmd
        self._process: psutil.Popen | None = None

    def __repr__(self) -> str:
        return f"SqlServer(server={self.connection.server!r}, running={self.running})"

    @property
    def running(self) -> bool:
        """
        Returns
        -------
        bool
            True if the engine was started and has not exited yet.
        """
        proc = self._process
        if proc is None:
            return False
        try:
            return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False

    def _env(self) -> dict[str, str]:
        env = os.environ.copy()
        env["SQLCMDPASSWORD"] = self.connection.password
        return env

    def _argv(self, query: str, database: str | None) -> list[str]:
        argv = [
            str(self.sqlcmd),
            "-C",
            "-S", self.connection.server,
            "-U", self.connection.user,
            "-b",
        ]
        if database:
            argv.extend(["-d", database])
        argv.extend(["-Q", query])
        return argv

    def start(self) -> None:
        if self.running:
            return
        INFO(f"launching {self.executable}")
        self._process = psutil.Popen(
            [str(self.executable)],
            stdin=subprocess.DEVNULL,
            start_new_session=True,
        )

    def probe(self, query: str) -> ProbeResult:
        cp = run(
            self._argv(query, None),
            check=False,
            capture_output=True,
            env=self._env(),
        )
        return ProbeResult(ok=cp.returncode == 0, output=cp.output)

    def execute_query(self, sql: str, *, database: str | None = None) -> list[Row]:
        argv = self._argv(f"SET NOCOUNT ON; {sql}", database or self.connection.database)
        argv.extend(["-s", SEPARATOR, "-W", "-h", "-1"])
        cp = run(argv, capture_output=True, env=self._env())
        return parse_rows(cp.stdout)

    def stop(self, grace: float) -> None:
        proc = self._process
        self._process = None
        if proc is None:
            return
        try:
            if not proc.is_running():
                return
            proc.terminate()
            try:
                proc.wait(timeout=grace)
            except psutil.TimeoutExpired:
                WARN(f"{self.executable} did not exit after {grace:g}s; killing it")
                proc.kill()
                proc.wait(timeout=grace or None)
        except psutil.NoSuchProcess:
            return

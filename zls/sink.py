"""Run/Log sink: the single path through which mutating zfs commands are issued.

Every command line is logged before it runs. In dry-run mode the command is only
logged. Otherwise it is executed and its captured output is logged line by line;
a failure is logged at ERROR and reported back as a failed CommandResult instead
of an exception, so the caller decides what to skip next.
"""
from __future__ import annotations

import logging
import shlex
import subprocess
import tempfile
from dataclasses import dataclass
from typing import TYPE_CHECKING

from zls.executor import ExecutorError

if TYPE_CHECKING:
    from zls.executor import Executor

log = logging.getLogger(__name__)


@dataclass
class CommandResult:
    command: str
    ok: bool
    output: str = ""
    reason: str = ""


class CommandSink:
    def __init__(self, executor: "Executor", dry_run: bool = False):
        self.executor = executor
        self.dry_run = dry_run

    def run(self, cmd: list[str]) -> CommandResult:
        line = shlex.join(cmd)
        log.info(line)
        if self.dry_run:
            return CommandResult(command=line, ok=True)
        try:
            output = self.executor.run(cmd)
        except ExecutorError as e:
            return self._failed(line, e)
        self._log_output(output)
        return CommandResult(command=line, ok=True, output=output)

    def pipe(self, send_cmd: list[str], recv_cmd: list[str]) -> CommandResult:
        """Run `send_cmd | recv_cmd`."""
        line = f"{shlex.join(send_cmd)} | {shlex.join(recv_cmd)}"
        log.info(line)
        if self.dry_run:
            return CommandResult(command=line, ok=True)
        try:
            output = self._run_pipe(send_cmd, recv_cmd)
        except ExecutorError as e:
            return self._failed(line, e)
        self._log_output(output)
        return CommandResult(command=line, ok=True, output=output)

    def _run_pipe(self, send_cmd: list[str], recv_cmd: list[str]) -> str:
        # Sender stderr goes to a file, not a pipe: it is only read after both
        # processes exit, and a full pipe buffer would stall the sender.
        with tempfile.TemporaryFile() as send_errfile:
            return self._pipe_into(send_cmd, recv_cmd, send_errfile)

    def _pipe_into(self, send_cmd: list[str], recv_cmd: list[str], send_errfile) -> str:
        try:
            send_proc = self.executor.popen(
                send_cmd, stdout=subprocess.PIPE, stderr=send_errfile,
            )
        except OSError as e:
            raise ExecutorError(send_cmd, 1, str(e)) from e
        try:
            recv_proc = self.executor.popen(
                recv_cmd, stdin=send_proc.stdout,
                stdout=subprocess.PIPE, stderr=subprocess.PIPE,
            )
        except OSError as e:
            send_proc.kill()
            send_proc.wait()
            raise ExecutorError(recv_cmd, 1, str(e)) from e
        # Allow send_proc to receive SIGPIPE if recv_proc dies
        send_proc.stdout.close()

        recv_out, recv_err = recv_proc.communicate()
        send_rc = send_proc.wait()
        send_errfile.seek(0)
        send_err = send_errfile.read()
        recv_rc = recv_proc.returncode

        if send_rc != 0 or recv_rc != 0:
            stderr = "\n".join(
                part for part in (_decode(send_err), _decode(recv_err)) if part.strip()
            )
            raise ExecutorError(
                send_cmd + ["|"] + recv_cmd,
                max(send_rc, recv_rc),
                f"send exited {send_rc}, recv exited {recv_rc}"
                + (f": {stderr}" if stderr else ""),
            )
        return _decode(recv_out) + _decode(recv_err)

    @staticmethod
    def _log_output(output: str) -> None:
        for out_line in output.splitlines():
            if out_line.strip():
                log.info(out_line)

    @staticmethod
    def _failed(line: str, error: ExecutorError) -> CommandResult:
        log.error("Command failed (exit %d): %s", error.returncode, line)
        for err_line in error.stderr.splitlines():
            if err_line.strip():
                log.error("  %s", err_line)
        return CommandResult(
            command=line, ok=False, output=error.stderr, reason=str(error),
        )


def _decode(data: bytes | str | None) -> str:
    if not data:
        return ""
    if isinstance(data, str):
        return data
    return data.decode(errors="replace")

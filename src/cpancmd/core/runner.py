"""Command execution using invoke library with custom extensions."""

import sys
from typing import IO

from invoke import Context, Result
from invoke.exceptions import CommandTimedOut

from cpancmd.core.log import logger


class Runner(Context):
    """invoke.Context with one `execute` entry point for all child runs.

    Three output modes:
    - captured (default): output is kept on the Result only
    - streamed: out_stream/err_stream receive output as it arrives
    - interactive: the child owns the terminal
    """

    def execute(
        self,
        command: str,
        timeout: int | None = None,
        out_stream: IO | None = None,
        err_stream: IO | None = None,
        interactive: bool = False,
        check: bool = True,
        env: dict[str, str] | None = None,
    ) -> Result:
        """Run a shell command.

        Args:
            command: Command string to execute
            timeout: Maximum execution time in seconds
            out_stream: File-like object receiving stdout as it arrives
            err_stream: File-like object receiving stderr as it arrives
            interactive: Attach the command to this terminal
            check: If True, raise on non-zero exit code
            env: Extra environment variables (merged into os.environ)

        Returns:
            invoke.Result with stdout, stderr and exited (-1 on timeout)

        Raises:
            invoke.UnexpectedExit: If check=True and the command fails
        """
        streamed = out_stream is not None or err_stream is not None
        kwargs = {
            "hide": not (streamed or interactive),
            "warn": not check,
            "in_stream": False,
        }
        if streamed:
            kwargs["out_stream"] = out_stream
            kwargs["err_stream"] = err_stream
        if interactive:
            del kwargs["in_stream"]
            kwargs["pty"] = sys.stdin.isatty()
        if timeout:
            kwargs["timeout"] = timeout
        if env:
            kwargs["env"] = env

        logger.spew("Running command", command=command)
        try:
            result = self.run(command, **kwargs)
        except CommandTimedOut as e:
            logger.error(f"Command timed out after {timeout} seconds")
            result = e.result
            result.exited = -1

        return result

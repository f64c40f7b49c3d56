"""Module switches: clean, make, test and install, optionally forced."""

from __future__ import annotations

import sys
from datetime import datetime

from cpancmd.command.options import CPAN_METHODS, CPAN_OPTIONS, DEFAULT
from cpancmd.core.errors import CpanCmdError
from cpancmd.core.log import logger
from cpancmd.core.logdir import AttemptLogDir
from cpancmd.core.result import AttemptResult, Outcome
from cpancmd.cpan.shim import capture_output


def select_switch(options: dict[str, bool]) -> str | None:
    """First module switch present, not counting force."""
    for option in CPAN_OPTIONS:
        if option == "f":
            continue
        if options.get(option):
            return option
    return None


def run_modules(state, args: list[str], options: dict[str, bool]) -> int:
    """Call the selected CPAN::Shell method on each module in turn.

    With no switch but some modules the method is install; with neither
    the interactive shell starts. Every attempt is captured, classified
    and saved to the run's log directory.

    Returns:
        1 if any attempt ended in a recognised failure, else 0

    Raises:
        CpanCmdError: A switch without modules, or a method the shell
            does not provide
    """
    cpan = state.runtime.cpan
    shell = cpan.shell

    switch = select_switch(options)
    if switch is None and args:
        switch = DEFAULT
    elif switch is None and not options.get("f"):
        logger.debug("No modules given, starting the CPAN.pm shell")
        return shell.shell()
    elif not args:
        raise CpanCmdError(f"Nothing to {CPAN_METHODS[switch or DEFAULT]}!")

    method = CPAN_METHODS[switch]
    if not callable(getattr(shell, method, None)):
        raise CpanCmdError(f"CPAN.pm cannot {method}!")

    forced = bool(options.get("f"))
    log_dir = AttemptLogDir(state.config.log_root, state.config.session)

    with capture_output(shell, cpan.capture) as capture:
        results = [
            attempt(shell, capture, method, module, forced, log_dir)
            for module in args
        ]
    cpan.attempts.extend(results)

    failed = [result for result in results if result.failed]
    report_failures(failed)
    return 1 if failed else 0


def attempt(shell, capture, method: str, module: str, forced: bool,
            log_dir: AttemptLogDir) -> AttemptResult:
    """Run one method on one module and classify what it printed."""
    capture.clear()
    with logger.span(
        "cpan {method} {module}", method=method, module=module, forced=forced
    ):
        if forced:
            returncode = shell.force(method, module)
        else:
            returncode = getattr(shell, method)(module)

    outcome, matched = capture.classify()
    log_file = log_dir.write(module, method, capture.get_all())

    if outcome is Outcome.FAILURE:
        logger.warn(
            "{method} failed for {module}", method=method, module=module,
            matched=matched, log_file=str(log_file),
        )
    elif outcome is Outcome.SUCCESS:
        logger.info(
            "{method} succeeded for {module}", method=method, module=module,
        )
    else:
        logger.info(
            "No clear result from {method} for {module}",
            method=method, module=module, last_line=capture.get_last_line(),
        )

    return AttemptResult(
        module=module,
        method=method,
        forced=forced,
        outcome=outcome,
        matched=matched,
        returncode=returncode,
        log_file=log_file,
        timestamp=datetime.now(),
    )


def report_failures(failed: list[AttemptResult]) -> None:
    if not failed:
        return
    print(file=sys.stderr)
    for result in failed:
        print(
            f"Failed to {result.method} {result.module}: {result.matched.strip()}",
            file=sys.stderr,
        )
        print(f"  output saved in {result.log_file}", file=sys.stderr)

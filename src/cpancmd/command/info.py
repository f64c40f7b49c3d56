"""Read-only switches: Changes files, authors, details, out-of-date list."""

from __future__ import annotations

import sys

import requests

from cpancmd import __version__
from cpancmd.core.errors import CpanCmdError
from cpancmd.core.log import logger
from cpancmd.cpan.shell import AuthorInfo, ModuleInfo

RULE = "-" * 73


def _author(shell, module: ModuleInfo) -> AuthorInfo:
    return shell.expand_author(module.userid) or AuthorInfo(id=module.userid)


def changes_url(template: str, module: ModuleInfo) -> str:
    """Fill the Changes URL template for a module's distribution.

    Examples:
        "{author}/{distribution}-{version}/Changes" with Business::ISBN
        -> "BDFOY/Business-ISBN-3.004/Changes"
    """
    distribution, version = module.distribution
    try:
        return template.format(
            author=module.userid.upper(),
            distribution=distribution,
            version=version,
            module=module.id,
        )
    except (KeyError, IndexError) as e:
        raise CpanCmdError(f"Bad changes_url template field {e}") from e


def fetch_changes(url: str, timeout: int) -> str:
    """Download a Changes file.

    Raises:
        requests.RequestException: On connection errors or HTTP errors
    """
    response = requests.get(
        url, timeout=timeout, headers={"User-Agent": f"cpancmd/{__version__}"}
    )
    response.raise_for_status()
    return response.text


def show_changes(state, args: list[str], options: dict[str, bool]) -> int:  # noqa: ARG001
    """Print the Changes file of each installed module's CPAN release."""
    shell = state.runtime.cpan.shell
    cpan_config = state.config.cpan

    for arg in args:
        print(f"Checking {arg}")
        module = shell.expand_module(arg)
        if module is None or not module.installed:
            logger.debug("Not installed, skipping Changes", module=arg)
            continue

        url = changes_url(cpan_config.changes_url, module)
        try:
            changes = fetch_changes(url, cpan_config.request_timeout)
        except requests.RequestException as e:
            logger.warn("Could not fetch Changes", module=arg, url=url, error=str(e))
            print(f"Could not fetch {url}: {e}", file=sys.stderr)
            continue

        print(f"Got {url} ...")
        sys.stdout.write(changes)
        if changes and not changes.endswith("\n"):
            sys.stdout.write("\n")
    return 0


def show_authors(state, args: list[str], options: dict[str, bool]) -> int:  # noqa: ARG001
    """One line per module: name, author id, email, full name."""
    shell = state.runtime.cpan.shell
    for arg in args:
        module = shell.expand_module(arg)
        if module is None or not module.userid:
            continue
        author = _author(shell, module)
        print(f"{arg:<25} {module.userid:<8} {author.email:<25} {author.fullname}")
    return 0


def show_details(state, args: list[str], options: dict[str, bool]) -> int:  # noqa: ARG001
    shell = state.runtime.cpan.shell
    for arg in args:
        module = shell.expand_module(arg)
        if module is None or not module.userid:
            continue
        author = _author(shell, module)

        uptodate = "" if module.uptodate else "Not "
        lines = [
            module.description or "(no description)",
            module.cpan_file,
            module.inst_file,
            f"Installed: {module.inst_version}",
            f"CPAN:      {module.cpan_version}  {uptodate}up to date",
            f"{author.fullname} ({module.userid})",
            author.email,
        ]
        print(f"{arg}\n{RULE}")
        print("\t" + "\n\t".join(lines))
        print()
    return 0


def _version(value: str) -> str:
    """Version as a 4-decimal number where it is one, else unchanged."""
    try:
        return f"{float(value):.4f}"
    except ValueError:
        return f"{value:>6}"


def show_out_of_date(state, args: list[str], options: dict[str, bool]) -> int:  # noqa: ARG001
    """Installed modules with a newer version on CPAN."""
    shell = state.runtime.cpan.shell
    modules = shell.expand_modules("/./")

    print(f"{'Module Name':<40}  {'Local':>6}  {'CPAN':>6}")
    print(RULE)
    for module in modules:
        if not module.installed or module.uptodate:
            continue
        print(
            f"{module.id:<40}  {_version(module.inst_version)}  "
            f"{_version(module.cpan_version)}"
        )
    return 0


def show_author_mods(state, args: list[str], options: dict[str, bool]) -> int:  # noqa: ARG001
    """Every module whose author id is one of args, case-insensitively."""
    shell = state.runtime.cpan.shell
    wanted = {arg.lower() for arg in args}
    for module in shell.expand_modules("/./"):
        if module.userid.lower() in wanted:
            print(module.id)
    return 0

"""Switch handlers and the table that dispatches to them."""

from cpancmd.command.table import METHOD_TABLE, MethodEntry, dispatch, strip_install_alias

__all__ = ["METHOD_TABLE", "MethodEntry", "dispatch", "strip_install_alias"]

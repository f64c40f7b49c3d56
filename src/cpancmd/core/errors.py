"""Exceptions raised by command handlers."""


class CpanCmdError(RuntimeError):
    """A command could not be carried out.

    The message is meant for the user as-is, e.g. "Nothing to install!".
    """

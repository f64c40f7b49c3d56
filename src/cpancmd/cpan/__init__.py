"""CPAN.pm adapter and output capture."""

from cpancmd.cpan.capture import OutputCapture
from cpancmd.cpan.shell import AuthorInfo, CpanShell, ModuleInfo
from cpancmd.cpan.shim import ChannelDemux, ChannelStream, capture_output

__all__ = [
    "AuthorInfo",
    "ChannelDemux",
    "ChannelStream",
    "CpanShell",
    "ModuleInfo",
    "OutputCapture",
    "capture_output",
]

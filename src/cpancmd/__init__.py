"""Command-line front end for CPAN.pm."""

__version__ = "1.56.0"

#!/usr/bin/env python3
"""cpan - run from a checkout after `pip install -e .`.

Same as the installed `cpan` script: parses the switches, loads the
configuration, and dispatches to the CPAN.pm handler for the winning
switch.
"""

from cpancmd.cli import main

if __name__ == "__main__":
    main()

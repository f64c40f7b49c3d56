"""Option letters understood by cpan and the order they are tried in."""

# Mutually exclusive; the first one present wins
META_OPTIONS = ("h", "v", "C", "A", "D", "O", "L", "a", "r", "J")

# Options that change how the run is set up rather than what it does
SETUP_OPTIONS = ("j",)

DEFAULT = "default"

# Module switches and the CPAN::Shell method each one calls
CPAN_METHODS = {
    DEFAULT: "install",
    "c": "clean",
    "f": "force",
    "i": "install",
    "m": "make",
    "t": "test",
}
CPAN_OPTIONS = tuple(sorted(k for k in CPAN_METHODS if k != DEFAULT))

OPTION_ORDER = META_OPTIONS + CPAN_OPTIONS

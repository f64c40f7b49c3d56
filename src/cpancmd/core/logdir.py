"""Per-run directory for captured CPAN.pm output."""

import re
from datetime import datetime
from pathlib import Path


class AttemptLogDir:
    """Holds one log file per module attempt of a single cpan run."""

    def __init__(self, base_dir: Path, session: str):
        """Pick the run directory; nothing is created until a write.

        Args:
            base_dir: Root for all run directories (config.log_root)
            session: Session name, prefixes the directory name
        """
        timestamp = datetime.now().strftime('%Y%m%d-%H%M%S')
        self.run_dir = base_dir / session / f"run-{timestamp}"

    def path_for(self, module: str, method: str) -> Path:
        """Log file path for `method` on `module`.

        Examples:
            path_for("Foo::Bar", "install") -> <run_dir>/install-Foo-Bar.log
        """
        safe = re.sub(r'[^A-Za-z0-9_.-]+', '-', module).strip('-') or "module"
        return self.run_dir / f"{method}-{safe}.log"

    def write(self, module: str, method: str, text: str) -> Path:
        """Write captured output for an attempt and return its path."""
        path = self.path_for(module, method)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

"""Repository-level CLI entrypoint for the solvency cascade engine.

This wrapper preserves the documented invocation style:

    python runner.py <config.json> [--output-dir results/]

It delegates execution to :mod:`solvency_cascade.runner`.
"""

from __future__ import annotations

import sys
from pathlib import Path

from solvency_cascade.runner import main


def _rewrite_config_path_arg(argv: list[str]) -> list[str]:
    """Rewrite config argument to ``configs/<name>`` when needed.

    README examples use config paths like ``config_random.json`` from the
    repository root, while the sample configs live under ``configs/``.
    """
    if len(argv) < 2:
        return argv

    candidate = Path(argv[1])
    if candidate.exists():
        return argv

    alt = Path("configs") / candidate
    if alt.exists():
        out = list(argv)
        out[1] = str(alt)
        return out

    return argv


if __name__ == "__main__":
    sys.argv = _rewrite_config_path_arg(sys.argv)
    main()

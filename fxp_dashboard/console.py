"""Console output shared by the session components."""

from __future__ import annotations


def log(msg: str) -> None:
    """Print with flush for reliable output from loop and timer callbacks."""
    print(msg, flush=True)

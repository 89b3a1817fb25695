from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional


def _run_git(args: list[str], *, cwd: Path) -> tuple[int, str]:
    try:
        p = subprocess.run(
            ["git", *args],
            cwd=str(cwd),
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            timeout=3.0,
            check=False,
        )
        return int(p.returncode), (p.stdout or "").strip()
    except (OSError, subprocess.TimeoutExpired):
        return 1, ""


def git_root(path: Path) -> Optional[Path]:
    if not path.is_dir():
        return None
    code, out = _run_git(["rev-parse", "--show-toplevel"], cwd=path)
    if code != 0 or not out:
        return None
    return Path(out)

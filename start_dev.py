"""Run the CloudDrive API with auto-reload for local development.

    python3 start_dev.py [extra uvicorn args]

Uses ``.venv`` at the repository root or under ``backend/`` when present.
Configuration comes from ``CLOUDDRIVE_*`` variables or ``.env``.
"""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parent
BACKEND_DIR = ROOT_DIR / "backend"

_VENV_PYTHON = Path(".venv/Scripts/python.exe" if os.name == "nt" else ".venv/bin/python")


def find_python() -> str:
    for base in (ROOT_DIR, BACKEND_DIR):
        candidate = base / _VENV_PYTHON
        if candidate.exists():
            return str(candidate)
    return sys.executable


def main() -> int:
    python = find_python()
    check = subprocess.run(
        [python, "-c", "import uvicorn, clouddrive.main"],
        cwd=BACKEND_DIR,
        capture_output=True,
    )
    if check.returncode != 0:
        print(f"clouddrive is not importable with {python}", file=sys.stderr)
        print("Install it with: pip install -e '.[dev]'", file=sys.stderr)
        return 1

    env = {**os.environ, "CLOUDDRIVE_MODE": os.environ.get("CLOUDDRIVE_MODE", "dev")}
    cmd = [
        python, "-m", "uvicorn", "clouddrive.main:app",
        "--reload", "--reload-dir", "clouddrive",
        "--host", os.environ.get("CLOUDDRIVE_HOST", "127.0.0.1"),
        "--port", os.environ.get("CLOUDDRIVE_PORT", "8000"),
        *sys.argv[1:],
    ]
    try:
        return subprocess.run(cmd, cwd=BACKEND_DIR, env=env).returncode
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())

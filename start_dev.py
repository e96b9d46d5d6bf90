"""Development launcher for ShareView.

Usage:
    python start_dev.py [--port 8000] [--backend-url http://127.0.0.1:5000] [--no-reload]

Runs ``uvicorn shareview.main:app`` from ``backend/`` with the backend's
virtual environment when one exists. Before starting it checks that the
runtime dependencies import and warns when the document backend (the service
that owns share tokens and OTPs) does not answer. Press Ctrl+C to stop.
"""

from __future__ import annotations

import argparse
import os
import subprocess
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parent
BACKEND_DIR = ROOT_DIR / "backend"

VENV_CANDIDATES = (
    BACKEND_DIR / ".venv" / "Scripts" / "python.exe",
    BACKEND_DIR / ".venv" / "bin" / "python",
    ROOT_DIR / ".venv" / "Scripts" / "python.exe",
    ROOT_DIR / ".venv" / "bin" / "python",
)

RUNTIME_MODULES = ("fastapi", "uvicorn", "httpx", "pydantic_settings", "openpyxl", "xlrd")

# ANSI colors (disabled on Windows without VT support)
if os.name == "nt":
    os.system("")  # enable VT100 on Windows 10+

CYAN = "\033[36m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
RED = "\033[31m"
RESET = "\033[0m"


def log(level: str, msg: str) -> None:
    colors = {"info": CYAN, "start": GREEN, "warn": YELLOW, "error": RED}
    print(f"{colors.get(level, '')}[{level}]{RESET} {msg}")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the ShareView API with auto-reload")
    parser.add_argument("--host", default=os.environ.get("SHAREVIEW_HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.environ.get("SHAREVIEW_PORT", "8000")))
    parser.add_argument(
        "--backend-url",
        default=os.environ.get("SHAREVIEW_BACKEND_URL", "http://127.0.0.1:5000"),
        help="document backend base URL",
    )
    parser.add_argument("--no-reload", action="store_true", help="disable uvicorn --reload")
    return parser.parse_args(argv)


def resolve_python() -> str:
    for candidate in VENV_CANDIDATES:
        if candidate.exists():
            return str(candidate)
    log("info", "No venv found, using the current interpreter")
    return sys.executable


def missing_modules(python: str) -> list[str]:
    """Names from RUNTIME_MODULES that ``python`` cannot import."""
    script = (
        "import importlib.util, sys\n"
        "print(' '.join(m for m in sys.argv[1:] if importlib.util.find_spec(m) is None))"
    )
    result = subprocess.run(
        [python, "-c", script, *RUNTIME_MODULES], capture_output=True, text=True,
    )
    if result.returncode != 0:
        return list(RUNTIME_MODULES)
    return result.stdout.split()


def backend_reachable(python: str, url: str) -> bool:
    """Any HTTP answer counts, the backend needs no dedicated health route."""
    script = "import httpx, sys; httpx.get(sys.argv[1], timeout=3.0)"
    result = subprocess.run([python, "-c", script, url], capture_output=True, text=True)
    return result.returncode == 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    python = resolve_python()
    log("info", f"Python: {python}")

    missing = missing_modules(python)
    if missing:
        log("error", f"Missing packages: {', '.join(missing)}. Run:")
        log("error", f"  cd {ROOT_DIR} && pip install -e '.[dev]'")
        return 1

    if not backend_reachable(python, args.backend_url):
        log("warn", f"Document backend at {args.backend_url} is not answering, "
                    "share links will show as unavailable until it is up")

    env = dict(os.environ)
    env.setdefault("SHAREVIEW_DEBUG", "true")
    env.setdefault("SHAREVIEW_LOG_LEVEL", "INFO")
    env["SHAREVIEW_BACKEND_URL"] = args.backend_url

    cmd = [
        python, "-m", "uvicorn", "shareview.main:app",
        "--host", args.host, "--port", str(args.port),
    ]
    if not args.no_reload:
        cmd += ["--reload", "--reload-dir", str(BACKEND_DIR / "shareview")]

    base = f"http://{args.host}:{args.port}"
    log("start", " ".join(cmd))
    log("info", f"  API:     {base}/api")
    log("info", f"  Health:  {base}/api/health")
    log("info", f"  Swagger: {base}/docs")
    log("info", f"  Backend: {args.backend_url}")

    try:
        return subprocess.call(cmd, cwd=BACKEND_DIR, env=env)
    except KeyboardInterrupt:
        print()
        log("info", "Ctrl+C received, shutting down")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())

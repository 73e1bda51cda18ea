#!/usr/bin/env python
"""
Run the K2 storefront API under uvicorn.

Environment:
    K2_API_HOST     bind address (default 0.0.0.0)
    K2_API_PORT     port (default 8000)
    K2_API_RELOAD   1 to auto-reload on source changes
    K2_MODE         start in K2 mode (true/1) or baseline (false/0)
"""
import os
import subprocess
import sys
from pathlib import Path


def build_command(env: dict) -> list[str]:
    cmd = [
        sys.executable, "-m", "uvicorn",
        "k2_storefront.api.main:get_app",
        "--factory",
        "--host", env.get("K2_API_HOST", "0.0.0.0"),
        "--port", env.get("K2_API_PORT", "8000"),
    ]
    if env.get("K2_API_RELOAD", "").lower() in ("1", "true"):
        cmd += ["--reload", "--reload-dir", "src"]
    return cmd


def main():
    project_root = Path(__file__).parent.parent

    env = os.environ.copy()
    src_path = str(project_root / "src")
    env["PYTHONPATH"] = os.pathsep.join(p for p in (src_path, env.get("PYTHONPATH")) if p)

    cmd = build_command(env)
    print(f"Starting K2 Storefront API: {' '.join(cmd[2:])}")
    try:
        subprocess.run(cmd, cwd=str(project_root), env=env)
    except KeyboardInterrupt:
        print("\nAPI stopped.")


if __name__ == "__main__":
    main()

#!/usr/bin/env python
"""
Run the Streamlit demo console (agent chat + live merchant logs).

The API must be running (scripts/run_api.py). The console reads K2_API_URL,
defaulting to http://localhost:8000; K2_UI_PORT picks the Streamlit port.

Usage:
    python scripts/run_app.py
"""
import os
import subprocess
import sys
from pathlib import Path


def main():
    project_root = Path(__file__).parent.parent
    ui_path = project_root / 'src' / 'k2_storefront' / 'ui' / 'app_streamlit.py'

    if not ui_path.exists():
        print(f"ERROR: demo console not found at {ui_path}")
        sys.exit(1)

    env = os.environ.copy()
    env.setdefault("K2_API_URL", "http://localhost:8000")

    cmd = [
        sys.executable, '-m', 'streamlit', 'run', str(ui_path),
        '--server.port', env.get("K2_UI_PORT", "8501"),
    ]
    print(f"Starting demo console against {env['K2_API_URL']}")

    try:
        subprocess.run(cmd, cwd=str(project_root), env=env)
    except KeyboardInterrupt:
        print("\nDemo console stopped.")


if __name__ == "__main__":
    main()

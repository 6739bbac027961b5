#!/usr/bin/env python3
"""Cross-platform install script for Blue Berry.

Usage:
    python install.py          # Production install
    python install.py --dev    # Development install (includes test tools)
"""

import os
import platform
import shutil
import subprocess
import sys
from pathlib import Path

MIN_PYTHON = (3, 11)

HOME = Path.home()
CONFIG_DIR = HOME / ".bb"
HISTORY_DIR = HOME / ".bb-history"


def main() -> None:
    # 1. Check Python version
    if sys.version_info < MIN_PYTHON:
        sys.exit(
            f"Error: Python {MIN_PYTHON[0]}.{MIN_PYTHON[1]}+ is required. "
            f"You have {sys.version_info.major}.{sys.version_info.minor}."
        )

    print(f"Python {sys.version_info.major}.{sys.version_info.minor} detected. OK.")

    dev = "--dev" in sys.argv
    project_dir = os.path.dirname(os.path.abspath(__file__))
    venv_dir = os.path.join(project_dir, ".venv")
    is_windows = platform.system() == "Windows"

    bin_dir = "Scripts" if is_windows else "bin"
    pip = os.path.join(venv_dir, bin_dir, "pip")

    # 2. Create virtual environment
    if not os.path.isdir(venv_dir):
        print("Creating virtual environment...")
        subprocess.check_call([sys.executable, "-m", "venv", venv_dir])
    else:
        print("Virtual environment already exists.")

    # 3. Install project
    subprocess.check_call([pip, "install", "--upgrade", "pip"])
    target = "-e .[dev]" if dev else "."
    print(f"Installing blueberry-agent ({target})...")
    subprocess.check_call([pip, "install", *target.split()], cwd=project_dir)

    # 4. Config and history directories
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    HISTORY_DIR.mkdir(parents=True, exist_ok=True)

    # 5. Copy example config files if missing
    for src, dst in [
        ("config.example.yaml", CONFIG_DIR / "config.yaml"),
        ("mcp.example.json", CONFIG_DIR / "mcp.json"),
    ]:
        src_path = os.path.join(project_dir, src)
        if not dst.exists() and os.path.exists(src_path):
            shutil.copy(src_path, dst)
            print(f"Created {dst} from {src}")
        elif dst.exists():
            print(f"{dst} already exists, skipping.")

    # 6. Print instructions
    activate_cmd = r".\.venv\Scripts\activate" if is_windows else "source .venv/bin/activate"

    print()
    print("=" * 50)
    print("  Blue Berry installation complete!")
    print("=" * 50)
    print()
    print("Next steps:")
    print(f"  1. Edit {CONFIG_DIR / 'config.yaml'} - pick a backend and model")
    print(f"  2. Edit {CONFIG_DIR / 'mcp.json'} - list your MCP tool providers")
    print("  3. Put API keys in .env, e.g. OPENAI_API_KEY=... or ANTHROPIC_API_KEY=...")
    print("  4. Activate the virtual environment:")
    print(f"       {activate_cmd}")
    print("  5. Start a session:")
    print("       bb")
    print("  6. Or check config:")
    print("       bb config-check")
    print()


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""Cross-platform install script for store-assistant.

Usage:
    python install.py          # Production install
    python install.py --dev    # Development install (includes test tools)
"""

import os
import platform
import shutil
import subprocess
import sys

MIN_PYTHON = (3, 11)


def main() -> None:
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
    python_exe = os.path.join(venv_dir, bin_dir, "python")

    if not os.path.isdir(venv_dir):
        print("Creating virtual environment...")
        subprocess.check_call([sys.executable, "-m", "venv", venv_dir])
    else:
        print("Virtual environment already exists.")

    print("Upgrading pip...")
    subprocess.check_call([pip, "install", "--upgrade", "pip"])

    if dev:
        print("Installing store-assistant in development mode...")
        subprocess.check_call([pip, "install", "-e", ".[test]"], cwd=project_dir)
    else:
        print("Installing store-assistant...")
        subprocess.check_call([pip, "install", "."], cwd=project_dir)

    data_dir = os.path.join(project_dir, "data")
    os.makedirs(data_dir, exist_ok=True)

    for src, dst in [("config.example.yaml", "config.yaml"), (".env.example", ".env")]:
        src_path = os.path.join(project_dir, src)
        dst_path = os.path.join(project_dir, dst)
        if not os.path.exists(dst_path) and os.path.exists(src_path):
            shutil.copy(src_path, dst_path)
            print(f"Created {dst} from {src}")
        elif os.path.exists(dst_path):
            print(f"{dst} already exists, skipping.")

    # Schema is created up front so the first chat does not pay for it.
    subprocess.check_call([python_exe, "-m", "store_assistant", "init-db"], cwd=project_dir)

    activate_cmd = r".\.venv\Scripts\activate" if is_windows else "source .venv/bin/activate"

    print()
    print("=" * 50)
    print("  store-assistant installation complete!")
    print("=" * 50)
    print()
    print("Next steps:")
    print("  1. Edit .env - set ANTHROPIC_API_KEY=sk-ant-...")
    print("  2. Review config.yaml - limits, personas, storage path")
    print("  3. Activate the virtual environment:")
    print(f"       {activate_cmd}")
    print("  4. Check the configuration:")
    print("       python -m store_assistant config-check")
    print("  5. Chat from the terminal:")
    print("       python -m store_assistant chat --persona staff --user-id 1")
    print()


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Startup script for container deployment.
Runs migrations, then serves the API.
"""

import os
import subprocess
import sys


def run_command(cmd: list[str], description: str) -> bool:
    """Run a command and return success status."""
    print(f"\n=== {description} ===")
    try:
        subprocess.run(cmd, check=True)
        return True
    except subprocess.CalledProcessError as e:
        print(f"Error: {description} failed with code {e.returncode}")
        return False


def main():
    print("\n" + "=" * 50)
    print("ClassKey Startup Script")
    print("=" * 50)

    if not run_command(["alembic", "upgrade", "head"], "Running database migrations"):
        sys.exit(1)

    port = os.environ.get("PORT", "8000")
    print(f"\n=== Starting uvicorn on port {port} ===\n")

    os.execvp("uvicorn", [
        "uvicorn",
        "classkey.main:app",
        "--host", "0.0.0.0",
        "--port", port
    ])


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Development server runner with automatic reload and environment setup.

Usage:
    python run_dev.py [local|function]
"""

import os
import sys
import subprocess
from pathlib import Path

APPS = {
    "local": "app.main:create_app",
    "function": "app.function:create_function_app",
}


def check_env_file():
    """Create .env from the example template on first run."""
    env_file = Path(".env")
    env_example = Path("env.example")

    if not env_file.exists() and env_example.exists():
        print("Creating .env file from template...")
        with open(env_example, 'r') as src, open(env_file, 'w') as dst:
            dst.write(src.read())
        print("Please update .env with your actual configuration values.")


def main():
    """Run the development server."""
    variant = sys.argv[1] if len(sys.argv) > 1 else "local"
    if variant not in APPS:
        print(f"Unknown app '{variant}'. Choose one of: {', '.join(APPS)}")
        sys.exit(2)

    check_env_file()

    # Set development environment
    os.environ.setdefault("ENVIRONMENT", "development")
    port = os.environ.get("PORT", "3000")

    try:
        # Run uvicorn with reload
        subprocess.run([
            sys.executable, "-m", "uvicorn",
            APPS[variant],
            "--factory",
            "--host", "0.0.0.0",
            "--port", port,
            "--reload"
        ])
    except KeyboardInterrupt:
        print("\nShutting down development server...")

if __name__ == "__main__":
    main()

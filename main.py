"""Ink Preview — dev launcher. Starts the preview server in watch mode."""

import argparse
import os
import signal
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "127.0.0.1")
PORT = os.getenv("PORT", "13015")


def main():
    parser = argparse.ArgumentParser(description="Ink Preview dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Settings directory (default: ./data)")
    parser.add_argument("--live-update", choices=["on", "off"], default=None,
                        help="Store the live update default before starting")
    args = parser.parse_args()

    if args.data_dir or args.live_update:
        from backend import storage
        storage.init_storage(args.data_dir or Path("data"))
        if args.live_update:
            storage.update_config({"live_update": args.live_update == "on"})

    # Build env for the subprocess so the server picks up the same data dir
    env = os.environ.copy()
    if args.data_dir:
        env["DATA_DIR"] = str(args.data_dir.resolve())

    procs: list[subprocess.Popen] = []

    def shutdown(*_):
        print("\nShutting down...")
        for p in procs:
            p.terminate()
        for p in procs:
            p.wait()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    print(f"Starting preview server on http://{HOST}:{PORT} ...")
    procs.append(subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "backend.app:app", "--reload", "--host", HOST, "--port", PORT],
        cwd=ROOT, env=env,
    ))

    for p in procs:
        p.wait()


if __name__ == "__main__":
    main()

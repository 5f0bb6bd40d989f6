"""
Start the RMG Portal API under uvicorn.

    python run.py                      # 127.0.0.1:8000
    python run.py --reload             # auto-reload while developing
    python run.py --workers 4 --no-auto-close
"""
import argparse
import os

import uvicorn


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="RMG Portal API server")
    parser.add_argument("--host", default="127.0.0.1", help="bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="bind port (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="reload on source changes")
    parser.add_argument(
        "--workers", type=int, default=1,
        help="worker processes (default: 1, forced to 1 with --reload)"
    )
    parser.add_argument(
        "--no-auto-close", action="store_true",
        help="do not start the job that closes long-resolved tickets"
    )
    return parser.parse_args()


def main():
    args = parse_args()
    workers = 1 if args.reload else args.workers

    # Read by pydantic-settings when the app module is imported
    if args.no_auto_close:
        os.environ["SCHEDULER_ENABLED"] = "false"

    # Every worker runs its own auto-close job; concurrent closes of the same
    # ticket are settled by the version check on save.
    print(f"RMG Portal API on http://{args.host}:{args.port} "
          f"(workers={workers}, reload={args.reload}, auto_close={not args.no_auto_close})")

    uvicorn.run(
        "rmg_portal.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=workers,
    )


if __name__ == "__main__":
    main()

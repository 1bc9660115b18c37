"""Run the encrypted record workflow: ``python -m fitledger``."""

import asyncio
import sys

from fitledger.config import configure_logging, load_config
from fitledger.workflow import execute_workflow


def main():
    config = load_config()
    configure_logging(config["debug"])

    try:
        import uvloop
        uvloop.install()
        print("[SYSTEM] Using uvloop for enhanced async performance")
    except ImportError:
        print("[SYSTEM] Using standard asyncio event loop")

    try:
        results = asyncio.run(execute_workflow(config))
    except KeyboardInterrupt:
        print("\n[SYSTEM] Workflow interrupted by user.")
        return 1

    if not results:
        print("[SYSTEM] Workflow failed!")
        return 1
    return 0 if results["statistics"]["success_rate"] > 0 else 1


if __name__ == "__main__":
    sys.exit(main())

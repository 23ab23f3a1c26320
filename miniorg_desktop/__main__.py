"""
Package entry point: ``python -m miniorg_desktop``.
"""

import asyncio
import logging
import sys


def run_main():
    """Run the desktop core, reporting startup failures on stderr."""
    from .main import main

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
    except Exception as e:
        print(f"FATAL: {type(e).__name__}: {e}", flush=True, file=sys.stderr)
        logging.getLogger(__name__).debug("Startup failure", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    run_main()

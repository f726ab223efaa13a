from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from . import __version__
from .daemon.supervisor import main as supervisor_main


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="paddle", description="Deploy and notification daemon for small servers.")
    parser.add_argument("config", nargs="?", help="path to config.yaml (default: $PADDLE_CONFIG or /etc/paddle/config.yaml)")
    parser.add_argument("--version", action="version", version=f"paddle {__version__}")
    args = parser.parse_args(argv)
    return supervisor_main(args.config)


if __name__ == "__main__":
    sys.exit(main())

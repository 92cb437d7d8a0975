"""Entry point for ``python -m sfsoap`` and the ``sfsoap`` console script."""

from __future__ import annotations

import io
import sys
from typing import List, Optional

from .cli import cli


def _utf8_streams() -> None:
    # record data from Salesforce can hold any Unicode
    for stream in (sys.stdout, sys.stderr):
        if isinstance(stream, io.TextIOWrapper):
            stream.reconfigure(encoding="utf-8", errors="backslashreplace")


def main(argv: Optional[List[str]] = None) -> None:
    _utf8_streams()
    cli.main(args=argv, prog_name="sfsoap")


if __name__ == "__main__":
    main()

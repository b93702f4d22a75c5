"""
Generate Deno FFI bindings for C++ headers using libclang.
"""

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from .build import build
from .config import load_configuration
from .errors import BindgenError

logger = logging.getLogger(__name__)


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(prog="denobindgen", description=__doc__)
    ap.add_argument("config", type=Path, help="TOML build configuration")
    ap.add_argument(
        "-I", dest="incs", action="append", default=[], help="Additional include directory"
    )
    ap.add_argument("--output", type=Path, default=None, help="Override the output directory")
    ap.add_argument("--target", default=None, help="Target triple, e.g. x86_64-pc-linux-gnu")
    ap.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_configuration(args.config)
        config.include += [str(inc.resolve()) for inc in map(Path, args.incs)]
        if args.output is not None:
            config.output_path = args.output.resolve()
        if args.target is not None:
            config.target = args.target
        build(config)
    except BindgenError as err:
        logger.error("%s", err)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

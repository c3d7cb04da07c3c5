from __future__ import annotations

import os
import sys
from typing import List


def _env_int(name: str, default: int | None) -> int | None:
    v = os.getenv(name)
    if not v:
        return default
    try:
        return int(v)
    except ValueError:
        print(f"WARN {name} is not an int, got {v}, using default {default}", file=sys.stderr)
        return default


def build_argv() -> List[str]:
    """
    Translate container environment into etl.cli arguments.
    MODE is single, range or live. RPC_URL feeds RPC_URL_OVERRIDE, POOLS and DATABASE_URL
    are read by the settings loader directly.
    """
    mode = (os.getenv("MODE") or "live").lower()
    argv = ["--config", os.getenv("CONFIG_PATH", "config.yaml")]

    sqlite_path = os.getenv("SQLITE_PATH")
    if sqlite_path:
        argv += ["--backend", "sqlite", "--sqlite-path", sqlite_path]
    if os.getenv("LOG_LEVEL"):
        argv += ["--log-level", os.environ["LOG_LEVEL"]]

    start_block = _env_int("START_BLOCK", None)
    end_block = _env_int("END_BLOCK", None)
    if mode == "single":
        if start_block is None:
            raise SystemExit("ERROR START_BLOCK must be set for MODE=single")
        argv += ["single", "--block", str(start_block)]
    elif mode == "range":
        if start_block is None or end_block is None:
            raise SystemExit("ERROR START_BLOCK and END_BLOCK must be set for MODE=range")
        if start_block > end_block:
            raise SystemExit("ERROR START_BLOCK must be less than or equal to END_BLOCK")
        argv += ["range", "--from", str(start_block), "--to", str(end_block)]
    elif mode == "live":
        argv += ["live"]
        if start_block is not None:
            argv += ["--start-block", str(start_block)]
    else:
        raise SystemExit(f"ERROR unknown MODE {mode!r}")
    return argv


def main() -> None:
    rpc = os.getenv("RPC_URL")
    if not rpc:
        print("ERROR RPC_URL must be set", file=sys.stderr)
        sys.exit(2)
    os.environ["RPC_URL_OVERRIDE"] = rpc

    argv = build_argv()
    print("INGEST starting")

    from etl.cli import main as cli_main
    code = cli_main(argv)
    print(f"INGEST done. exit code {code}")
    sys.exit(code)


if __name__ == "__main__":
    main()

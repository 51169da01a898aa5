from __future__ import annotations

import argparse

import uvicorn

from platecost.apps.api.main import create_app


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the PlateCost API locally")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    return parser


def main() -> None:
    # Local entry point; deployments run the module-level app behind their own server.
    args = _build_parser().parse_args()
    uvicorn.run(create_app(), host=args.host, port=args.port)


if __name__ == "__main__":
    main()

"""Serves the review API for the tally sheet digitizer."""

import argparse

import uvicorn

from tally_ocr.utils.config import load_config
from tally_ocr.utils.logger import setup_logging


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Tally sheet review API")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args(argv)

    setup_logging(load_config().log_level)
    uvicorn.run("tally_ocr.api.app:app", host=args.host, port=args.port)


if __name__ == "__main__":
    main()

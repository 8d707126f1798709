"""Run the dashboard API: python -m aimon"""

import uvicorn

from .config import DEFAULT_HOST, DEFAULT_PORT


def main() -> None:
    uvicorn.run("aimon.server:app", host=DEFAULT_HOST, port=DEFAULT_PORT, log_config=None)


if __name__ == "__main__":
    main()

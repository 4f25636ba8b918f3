"""Convenience entry point for running the storefront Celery worker.

Most deployments will invoke the standard Celery CLI
(``celery -A infrastructure.tasks.config.celery worker -B``); this script
keeps Procfile-style runners and local testing straightforward.
"""
from __future__ import annotations

import sys

from .config.celery import celery_app


def main(argv: list[str] | None = None) -> None:
    args = ["worker", "--hostname=storefront@%h", "--queues=high,default,low"]
    celery_app.worker_main(argv=args + list(argv if argv is not None else sys.argv[1:]))


if __name__ == "__main__":
    main()

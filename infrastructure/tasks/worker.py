"""Convenience entry point for running the lifecycle worker.

Beat runs embedded so a single process covers the daily schedule; larger
deployments run ``celery beat`` separately and drop ``--beat``.
"""
from __future__ import annotations

from .config.celery import celery_app


def main() -> None:
    celery_app.worker_main(
        argv=[
            "worker",
            "--beat",
            "--hostname=lifecycle@%h",
            "--queues=lifecycle,default",
            "--loglevel=INFO",
        ]
    )


if __name__ == "__main__":
    main()

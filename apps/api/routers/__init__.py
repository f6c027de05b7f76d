"""Routers package."""

from . import (
    health,
    topic_queue,
    promo_threads,
    cron,
    admin,
)

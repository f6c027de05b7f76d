"""Models package."""

from .topic_queue_item import TopicQueueItem
from .promo_thread import PromoThread

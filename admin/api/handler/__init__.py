"""Admin API 핸들러 패키지"""

from admin.api.handler.queue import QueueHandler

__all__ = ['QueueHandler']

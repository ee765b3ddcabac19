import asyncio
import logging

from .resolution import URLResolutionService

logger = logging.getLogger(__name__)

async def expire_links_forever(service: URLResolutionService, interval: int = 3600):
    while True:
        try:
            logger.info("Running background cleanup job...")
            await service.cleanup_expired()
        except Exception as e:
            logger.error(f"Error in cleanup job: {e}")

        await asyncio.sleep(interval)

"""Main entry point - runs the API server and the maintenance loop."""

import asyncio
import logging
import signal

import uvicorn

from officemate.api.app import create_app
from officemate.cache.redis_client import close_redis_store
from officemate.config import get_settings
from officemate.db.database import close_db, init_db
from officemate.maintenance import run_periodic_cleanup

logger = logging.getLogger(__name__)


class Application:
    """Main application that runs the API and background maintenance."""

    def __init__(self):
        self.settings = get_settings()
        self._shutdown_event = asyncio.Event()

    async def start(self):
        """Start all services."""
        # Configure logging
        log_level = logging.DEBUG if self.settings.debug else logging.INFO
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

        logger.info("Starting OfficeMate...")
        logger.info(f"Environment: {self.settings.environment}")
        if self.settings.notifications_dry_run:
            logger.warning("NOTIFICATIONS_DRY_RUN enabled - SMS and email are only logged")

        # Initialize database
        await init_db()
        logger.info("Database initialized")

        tasks = [
            asyncio.create_task(self._run_api()),
            asyncio.create_task(self._run_maintenance()),
        ]
        logger.info("API and maintenance tasks created")

        # Wait for shutdown signal
        await self._shutdown_event.wait()

        # Cancel all tasks
        for task in tasks:
            task.cancel()

        # Wait for tasks to complete
        await asyncio.gather(*tasks, return_exceptions=True)

        # Cleanup
        await self._cleanup()

    async def _run_api(self):
        """Run the FastAPI server."""
        try:
            app = create_app()
            config = uvicorn.Config(
                app,
                host=self.settings.api_host,
                port=self.settings.api_port,
                log_level="debug" if self.settings.debug else "info",
            )
            server = uvicorn.Server(config)
            logger.info(f"Starting API server on {self.settings.api_host}:{self.settings.api_port}")
            await server.serve()
        except asyncio.CancelledError:
            logger.info("API server cancelled")
        except Exception as e:
            logger.error(f"API error: {e}")
            raise

    async def _run_maintenance(self):
        try:
            await run_periodic_cleanup(self.settings.cleanup_interval_seconds)
        except asyncio.CancelledError:
            logger.info("Maintenance loop cancelled")

    async def _cleanup(self):
        """Cleanup resources."""
        logger.info("Cleaning up...")
        await close_db()
        await close_redis_store()
        logger.info("Cleanup complete")

    def shutdown(self):
        """Signal shutdown."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()


def main():
    """Main entry point."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    app = Application()

    # Setup signal handlers
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.shutdown)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        loop.close()


if __name__ == "__main__":
    main()

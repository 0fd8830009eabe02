"""
Worker that runs the processing loop once or on a fixed interval.
"""

import logging
import signal
import threading
import time
from typing import Any, Dict, Optional

from ..config import Config
from ..exceptions import QueueStoreError
from .claims import ClaimCoordinator
from .dead_letter import DeadLetterQueue
from .document_processor import ProcessingLoop
from .recorder import ResultRecorder

logger = logging.getLogger(__name__)


class DocumentWorker:
    """
    Owns the queue components for one worker instance and triggers
    processing cycles. SIGINT and SIGTERM request a graceful stop, which the
    processing loop honours at the next item boundary.
    """

    def __init__(self, config: Config, instance_id: Optional[str] = None):
        """
        Initialize document worker.

        Args:
            config: Configuration object
            instance_id: Optional instance id (defaults to the configured one)
        """
        self.config = config
        self.instance_id = instance_id or config.get_instance_id()
        self.cancel_event = threading.Event()

        self.store = None
        self.processor = None

        self.stats: Dict[str, Any] = {
            "cycles": 0,
            "failed_cycles": 0,
            "items_processed": 0,
            "items_failed": 0,
            "start_time": None,
            "end_time": None
        }

        logger.info(f"Initialized DocumentWorker: {self.instance_id}")

    def run_once(self) -> Dict[str, Any]:
        """
        Run a single processing cycle.

        Returns:
            Statistics of the cycle

        Raises:
            QueueStoreError: If the store fails during the cycle
        """
        self._ensure_components()

        cycle_stats = self.processor.run(self.cancel_event)
        self.stats["cycles"] += 1
        self.stats["items_processed"] += cycle_stats["items_processed"]
        self.stats["items_failed"] += cycle_stats["items_failed"]
        return cycle_stats

    def run_forever(self, interval: Optional[float] = None) -> Dict[str, Any]:
        """
        Run processing cycles every ``interval`` seconds until stopped.

        Store failures end the current cycle only; the worker waits for the
        next interval and tries again.

        Args:
            interval: Seconds between the start of cycles (defaults to configuration)

        Returns:
            Accumulated statistics
        """
        interval = interval if interval is not None else self.config.get_interval()
        logger.info(f"Worker {self.instance_id} processing every {interval} seconds")

        while not self.cancel_event.is_set():
            started = time.monotonic()
            try:
                self.run_once()
            except QueueStoreError as e:
                self.stats["failed_cycles"] += 1
                logger.error(f"Processing cycle failed for worker {self.instance_id}: {str(e)}")

            remaining = interval - (time.monotonic() - started)
            if remaining > 0:
                self.cancel_event.wait(remaining)

        return self.stats

    def start(self, once: bool = False, interval: Optional[float] = None) -> Dict[str, Any]:
        """
        Install signal handlers and run until done or stopped.

        Args:
            once: Run a single cycle instead of looping
            interval: Seconds between cycles when looping

        Returns:
            Processing statistics
        """
        logger.info(f"Starting worker {self.instance_id}")

        previous_handlers = {}
        if threading.current_thread() is threading.main_thread():
            for signum in (signal.SIGINT, signal.SIGTERM):
                previous_handlers[signum] = signal.signal(signum, self._signal_handler)

        self.stats["start_time"] = time.time()
        try:
            if once:
                self.run_once()
            else:
                self.run_forever(interval)
        finally:
            for signum, handler in previous_handlers.items():
                signal.signal(signum, handler)
            self._cleanup()
            self.stats["end_time"] = time.time()

        return self.stats

    def stop(self):
        """Request graceful shutdown of the worker."""
        logger.info(f"Shutdown requested for worker {self.instance_id}")
        self.cancel_event.set()

    def _ensure_components(self):
        if self.processor is not None:
            return

        logger.debug(f"Initializing components for worker {self.instance_id}")

        self.store = self.config.get_queue_store()
        if not self.store.schema_exists():
            self.store.initialize()

        dead_letter_queue = DeadLetterQueue(self.store)
        self.processor = ProcessingLoop(
            claims=ClaimCoordinator(self.store, self.instance_id),
            recorder=ResultRecorder(self.store, dead_letter_queue),
            generator=self.config.get_generator(),
            batch_size=self.config.get_batch_size(),
            error_output=self.config.get_error_output()
        )

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals gracefully."""
        signal_name = signal.Signals(signum).name
        logger.info(f"Worker {self.instance_id} received {signal_name} signal")
        self.stop()

    def _cleanup(self):
        """Clean up resources and connections."""
        if self.store:
            try:
                self.store.close()
            except QueueStoreError as e:
                logger.warning(f"Error closing queue store: {str(e)}")

        self.store = None
        self.processor = None
        logger.debug(f"Cleanup completed for worker {self.instance_id}")

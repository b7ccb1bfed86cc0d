"""
Catalog cache: an in-memory snapshot of normalized products refreshed from
an external source, plus a background refresher.
"""

import itertools
import logging
import threading
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from storefront.config import DEFAULT_REFRESH_SECONDS
from storefront.exceptions import StorefrontError
from storefront.logging_config import log_execution_time
from storefront.models import Product
from storefront.normalizers import ProductNormalizer

logger = logging.getLogger(__name__)

RawFetcher = Callable[[], list[dict]]
Listener = Callable[[list[Product]], None]


class CatalogCache:
    """
    Holds the current product snapshot.

    Each refresh takes a sequence number before fetching. A completed
    refresh is applied only if no refresh with a higher number has been
    applied already, so a slow response never overwrites newer data. A
    failed refresh keeps the last good snapshot.
    """

    def __init__(
        self,
        fetch_raw: RawFetcher,
        normalizer: ProductNormalizer,
        initial: Optional[list[Product]] = None,
    ):
        self.fetch_raw = fetch_raw
        self.normalizer = normalizer
        self._products: list[Product] = list(initial or [])
        self._lock = threading.Lock()
        self._normalize_lock = threading.Lock()
        self._sequence = itertools.count(1)
        self._applied_sequence = 0
        self._listeners: list[Listener] = []
        self.last_error: Optional[Exception] = None

    def get(self) -> list[Product]:
        """Return the current snapshot (may lag the external source)."""
        with self._lock:
            return list(self._products)

    def get_product(self, product_id_or_handle: str) -> Optional[Product]:
        for product in self.get():
            if product.id == product_id_or_handle or product.handle == product_id_or_handle:
                return product
        return None

    @property
    def applied_sequence(self) -> int:
        return self._applied_sequence

    @log_execution_time(logger)
    def refresh(self) -> list[Product]:
        """
        Fetch, normalize and install a new snapshot.

        Returns the snapshot in effect after the call. Fetch failures are
        logged and recorded in ``last_error``; they never clear the cache.
        """
        with self._lock:
            sequence = next(self._sequence)

        try:
            raw_records = self.fetch_raw()
        except StorefrontError as e:
            self.last_error = e
            logger.error(
                f"Catalog refresh #{sequence} failed, keeping last snapshot: {e.message}",
                extra={"error": e.to_dict()},
            )
            return self.get()
        except Exception as e:
            self.last_error = e
            logger.error(
                f"Catalog refresh #{sequence} failed, keeping last snapshot: {e}",
                exc_info=True,
            )
            return self.get()

        with self._normalize_lock:
            products = list(self.normalizer.normalize_batch(raw_records).successful)
        return self._apply(sequence, products)

    def _apply(self, sequence: int, products: list[Product]) -> list[Product]:
        with self._lock:
            if sequence <= self._applied_sequence:
                logger.info(
                    f"Discarding stale catalog refresh #{sequence}; "
                    f"#{self._applied_sequence} already applied"
                )
                return list(self._products)
            self._products = list(products)
            self._applied_sequence = sequence
            self.last_error = None
            snapshot = list(self._products)
            listeners = list(self._listeners)

        logger.info(
            f"Catalog refresh #{sequence} applied",
            extra={"metrics": {"product_count": len(snapshot)}},
        )
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Catalog listener failed")
        return snapshot

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a snapshot listener; returns a callable that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe


class CatalogRefresher:
    """
    Refreshes a CatalogCache on a fixed interval until stopped.

    Example:
        with CatalogRefresher(cache, interval_seconds=30):
            serve()
    """

    JOB_ID = "catalog_refresh"

    def __init__(self, cache: CatalogCache, interval_seconds: int = DEFAULT_REFRESH_SECONDS):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.cache = cache
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[BackgroundScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self, refresh_now: bool = True) -> None:
        if self.running:
            return
        if refresh_now:
            self.cache.refresh()

        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            func=self.cache.refresh,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=self.JOB_ID,
            name=f"Refresh catalog every {self.interval_seconds}s",
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info(f"Catalog refresher started ({self.interval_seconds}s interval)")

    def stop(self) -> None:
        if self._scheduler is None:
            return
        if self._scheduler.get_job(self.JOB_ID):
            self._scheduler.remove_job(self.JOB_ID)
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Catalog refresher stopped")

    def __enter__(self) -> "CatalogRefresher":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False

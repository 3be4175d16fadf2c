"""
Shared resource pools.

Some conversions need a scarce, expensive resource (PDF/A needs an ICC
color profile embedded as its output intent). Instead of building one per
conversion, a fixed number are created lazily and checked out/returned
through a queue shared by all workers.

Pool size matches the worker-pool bound, so a worker never waits longer
than one conversion for a resource.
"""

import logging
import queue
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Generic, Iterator, Optional, TypeVar

from PIL import ImageCms

from .errors import ResourceUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResourcePool(Generic[T]):
    """Bounded checkout/return pool with lazy creation."""

    def __init__(self, factory: Callable[[], T], size: int, name: str = "resource"):
        if size < 1:
            raise ValueError(f"Pool size must be >= 1, got {size}")
        self.name = name
        self.size = size
        self._factory = factory
        self._idle: "queue.Queue[T]" = queue.Queue(maxsize=size)
        self._created = 0
        self._lock = threading.Lock()

    @property
    def created(self) -> int:
        with self._lock:
            return self._created

    @property
    def idle(self) -> int:
        return self._idle.qsize()

    def acquire(self, timeout: Optional[float] = None) -> T:
        """
        Take a resource, creating one if the pool is not yet full.

        Raises:
            ResourceUnavailableError: If none is returned within timeout
        """
        try:
            return self._idle.get_nowait()
        except queue.Empty:
            pass

        with self._lock:
            create = self._created < self.size
            if create:
                self._created += 1
        if create:
            try:
                resource = self._factory()
            except Exception:
                with self._lock:
                    self._created -= 1
                raise
            logger.debug(f"[Pool] Created {self.name} {self.created}/{self.size}")
            return resource

        try:
            return self._idle.get(timeout=timeout)
        except queue.Empty:
            raise ResourceUnavailableError(self.name, timeout or 0)

    def release(self, resource: T) -> None:
        """Return a resource to the pool."""
        self._idle.put_nowait(resource)

    @contextmanager
    def checkout(self, timeout: Optional[float] = None) -> Iterator[T]:
        resource = self.acquire(timeout)
        try:
            yield resource
        finally:
            self.release(resource)


@dataclass(frozen=True)
class IccProfile:
    """An ICC color profile ready to embed as a PDF output intent."""

    description: str
    data: bytes
    components: int = 3


def build_srgb_profile() -> IccProfile:
    """Create an sRGB ICC profile with Pillow's LittleCMS bindings."""
    profile = ImageCms.ImageCmsProfile(ImageCms.createProfile("sRGB"))
    return IccProfile(description="sRGB IEC61966-2.1", data=profile.tobytes())


class IccProfilePool(ResourcePool[IccProfile]):
    """Pool of sRGB ICC profiles shared by all PDF/A conversions."""

    def __init__(self, size: int, factory: Callable[[], IccProfile] = build_srgb_profile):
        super().__init__(factory=factory, size=size, name="ICC profile")

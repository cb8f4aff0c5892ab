"""Sampling strategies for event volume reduction.

Uniform sampling draws from an injected ``numpy.random.Generator`` so tests
and simulations can seed it. Deterministic and bucketed sampling hash a key
(user id, session id or event name) with SHA-256, which is stable across
processes, unlike Python's salted ``hash()``.

Sample rates are validated when a configuration is built; the functions here
assume a valid rate and only apply the 0.0 / 1.0 boundary rules.
"""

from __future__ import annotations

import hashlib
import logging
import math
import threading
import time
from typing import Callable, Iterable, Optional

import numpy as np

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_HASH_SPACE = float(2**64)


def sample_rate_error(rate: float) -> Optional[str]:
    """Return why a sample rate is invalid, or None if it is usable."""
    if rate is None or isinstance(rate, bool) or not isinstance(rate, (int, float)):
        return f"Sample rate must be a number, got {rate!r}"
    if math.isnan(rate) or math.isinf(rate):
        return f"Sample rate must be finite, got {rate}"
    if rate < 0.0:
        return f"Sample rate cannot be negative: {rate}"
    if rate > 1.0:
        return f"Sample rate cannot exceed 1.0: {rate}"
    return None


def check_sample_rate(rate: float) -> float:
    """Validate a sample rate at configuration build time.

    Raises:
        ConfigurationError: If the rate is outside [0, 1], NaN or infinite.
    """
    error = sample_rate_error(rate)
    if error:
        raise ConfigurationError(error, field_name="sample_rate", config_type="rule")
    return float(rate)


def rate_to_percentage(rate: float) -> float:
    return min(max(rate * 100.0, 0.0), 100.0)


def percentage_to_rate(percentage: float) -> float:
    return min(max(percentage / 100.0, 0.0), 1.0)


def stable_hash(key: str) -> int:
    """64-bit unsigned hash of a key, identical in every process."""
    digest = hashlib.sha256(key.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")


def normalized_hash(key: str) -> float:
    """Map a key onto [0, 1)."""
    return stable_hash(key) / _HASH_SPACE


class SamplingEngine:
    """Pass/fail decisions for a sample rate and optional key.

    Args:
        rng: Random generator for uniform sampling. Takes precedence over seed.
        seed: Seed for a fresh generator when rng is not given.
    """

    def __init__(self, rng: Optional[np.random.Generator] = None, seed: Optional[int] = None):
        self.rng = rng if rng is not None else np.random.default_rng(seed)

    def should_sample(self, rate: float, key: Optional[str] = None) -> bool:
        """Deterministic when a key is given, uniform random otherwise."""
        if key is None:
            return self.should_sample_uniform(rate)
        return self.should_sample_deterministic(key, rate)

    def should_sample_uniform(self, rate: float) -> bool:
        if rate >= 1.0:
            return True
        if rate <= 0.0:
            return False
        return float(self.rng.random()) < rate

    def should_sample_deterministic(self, key: str, rate: float) -> bool:
        if rate >= 1.0:
            return True
        if rate <= 0.0:
            return False
        return normalized_hash(key) < rate

    @staticmethod
    def sampling_bucket(key: str, bucket_count: int) -> int:
        if bucket_count <= 0:
            return 0
        return stable_hash(key) % bucket_count

    def should_sample_bucketed(self, key: str, bucket_count: int, target_buckets: Iterable[int]) -> bool:
        return self.sampling_bucket(key, bucket_count) in set(target_buckets)

    def should_sample_with_backoff(
        self, event_count: int, base_rate: float, backoff_factor: float = 0.5
    ) -> bool:
        """Exponentially reduce the rate for repeated events.

        The first occurrence (count <= 1) samples at ``base_rate``; each
        further occurrence multiplies the rate by ``backoff_factor``.
        """
        if event_count <= 1:
            return self.should_sample_uniform(base_rate)
        adjusted = base_rate * backoff_factor ** (event_count - 1)
        return self.should_sample_uniform(min(max(adjusted, 0.0), 1.0))


def adaptive_rate(observed_events: int, target_events_per_window: int) -> float:
    """effective rate = min(1, target / observed)."""
    if observed_events <= target_events_per_window:
        return 1.0
    return min(1.0, target_events_per_window / observed_events)


class AdaptiveSampler:
    """Windowed adaptive sampling shared across concurrent callers.

    Events are counted per window. When a window closes, the effective rate
    for the next window becomes ``min(1, target / observed)`` using the count
    of the window that just closed; within a window the rate is fixed. The
    window state is guarded by a lock, so one sampler can be shared by every
    thread routing through the same rule.

    Args:
        target_events_per_window: Desired number of sampled events per window.
        window_seconds: Window length.
        engine: SamplingEngine providing the uniform draw.
        clock: Monotonic clock in seconds (injectable for tests).
    """

    def __init__(
        self,
        target_events_per_window: int,
        window_seconds: float = 60.0,
        engine: Optional[SamplingEngine] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if target_events_per_window <= 0:
            raise ConfigurationError(
                "target_events_per_window must be positive",
                field_name="target_events_per_window",
                config_type="sampling",
            )
        if window_seconds <= 0:
            raise ConfigurationError(
                "window_seconds must be positive",
                field_name="window_seconds",
                config_type="sampling",
            )
        self.target_events_per_window = target_events_per_window
        self.window_seconds = window_seconds
        self.engine = engine or SamplingEngine()
        self._clock = clock
        self._lock = threading.Lock()
        self._window_start = clock()
        self._count = 0
        self._rate = 1.0

    @property
    def effective_rate(self) -> float:
        with self._lock:
            self._roll_window(self._clock())
            return self._rate

    @property
    def observed_in_window(self) -> int:
        with self._lock:
            self._roll_window(self._clock())
            return self._count

    def _roll_window(self, now: float) -> None:
        elapsed = now - self._window_start
        if elapsed < self.window_seconds:
            return
        windows_passed = int(elapsed // self.window_seconds)
        # an idle gap of more than one window means nothing was observed last window
        observed = self._count if windows_passed == 1 else 0
        self._rate = adaptive_rate(observed, self.target_events_per_window)
        self._window_start += windows_passed * self.window_seconds
        self._count = 0
        logger.debug(f"Adaptive window rolled: observed={observed}, rate={self._rate:.4f}")

    def should_sample(self) -> bool:
        with self._lock:
            self._roll_window(self._clock())
            self._count += 1
            rate = self._rate
        return self.engine.should_sample_uniform(rate)

    def reset(self) -> None:
        with self._lock:
            self._window_start = self._clock()
            self._count = 0
            self._rate = 1.0

"""Incremental bandwidth from a restart-prone cumulative egress counter.

The runtime's ``tx_bytes`` counter only ever grows while a container is
running and starts again from near zero when the container restarts.  Each
instant pass stores the raw reading, and the next pass turns the new reading
into the bandwidth consumed in between.
"""

from __future__ import annotations

import logging
from datetime import datetime

logger = logging.getLogger(__name__)

BYTES_PER_GB = 1024 * 1024 * 1024


def compute_delta(
    previous_result: int | None,
    previous_time: datetime | None,
    raw_counter: int,
    container_start_time: datetime,
) -> float:
    """Return gigabytes transmitted since the previous sample.

    Parameters
    ----------
    previous_result:
        Raw counter stored by the previous sample, if any.
    previous_time:
        When the previous sample was taken, or ``None`` if never sampled.
    raw_counter:
        Counter reading just taken.
    container_start_time:
        Start time of the container's current process.

    Returns
    -------
    float
        Bandwidth in GB (``2**30`` bytes).  Never negative.

    Notes
    -----
    A container that started at or after the previous sample has a fresh
    counter, so the whole reading is new usage.  A reading below the stored
    value without a restart (a counter wrap or a metrics backend reset) is
    re-baselined the same way.
    """
    if raw_counter < 0:
        raise ValueError(f"raw_counter must be non-negative, got {raw_counter}")

    if previous_time is None or previous_result is None:
        return raw_counter / BYTES_PER_GB

    if container_start_time >= previous_time:
        return raw_counter / BYTES_PER_GB

    if raw_counter < previous_result:
        logger.warning(
            "Counter went backwards without a restart (%d < %d); re-baselining",
            raw_counter,
            previous_result,
        )
        return raw_counter / BYTES_PER_GB

    return (raw_counter - previous_result) / BYTES_PER_GB

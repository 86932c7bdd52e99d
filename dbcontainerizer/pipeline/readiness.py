"""Bounded polling of a background service until it answers."""
from __future__ import annotations

import time
from typing import Callable

from ..capabilities import ProbeResult
from ..errors import ReadinessTimeout
from ..messages import DEBUG, INFO


def wait_until_ready(
    check: Callable[[], ProbeResult],
    *,
    max_attempts: int = 60,
    interval: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Call a readiness probe until it succeeds or the attempt budget runs out.

    Parameters
    ----------
    check : Callable[[], ProbeResult]
        A zero-argument probe.  It is called at most `max_attempts` times.
    max_attempts : int, optional
        The maximum number of probe calls.  Defaults to 60.
    interval : float, optional
        Seconds to sleep between consecutive attempts.  There is no sleep after the
        final attempt.  Defaults to 2 seconds.
    sleep : Callable[[float], None], optional
        The sleep function, replaceable for testing.

    Returns
    -------
    int
        The number of attempts it took for the probe to succeed.

    Raises
    ------
    ValueError
        If `max_attempts` is not positive or `interval` is negative.
    ReadinessTimeout
        If every attempt failed.  The error carries the diagnostic output of the
        first failed probe.

    Notes
    -----
    The diagnostic output of the first failed probe is printed once to aid
    debugging.  Later failures only print a progress line.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be positive: {max_attempts}")
    if interval < 0:
        raise ValueError(f"interval must be non-negative: {interval}")

    first_failure: str | None = None
    for attempt in range(1, max_attempts + 1):
        result = check()
        if result.ok:
            INFO(f"service is up after {attempt} attempt(s)")
            return attempt

        if first_failure is None:
            first_failure = result.output
            DEBUG(
                "first connection attempt failed; diagnostic output:\n"
                f"{result.output.strip() or '<no output>'}"
            )

        if attempt < max_attempts:
            INFO(f"still waiting ({attempt}/{max_attempts})...")
            sleep(interval)

    raise ReadinessTimeout(
        f"service did not become ready after {max_attempts} attempts",
        output=first_failure or "",
    )

from __future__ import annotations

import pytest

from dbcontainerizer.capabilities import ProbeResult
from dbcontainerizer.errors import PipelineError, ReadinessTimeout
from dbcontainerizer.pipeline.readiness import wait_until_ready


class Probe:
    """Fails until the nth call."""

    def __init__(self, succeed_on: int | None) -> None:
        self.succeed_on = succeed_on
        self.calls = 0

    def __call__(self) -> ProbeResult:
        self.calls += 1
        if self.succeed_on is not None and self.calls >= self.succeed_on:
            return ProbeResult(ok=True)
        return ProbeResult(ok=False, output=f"Login timeout expired ({self.calls})")


def test_succeeds_on_fifth_attempt() -> None:
    probe = Probe(succeed_on=5)
    sleeps: list[float] = []
    assert wait_until_ready(probe, max_attempts=60, interval=2.0, sleep=sleeps.append) == 5
    assert probe.calls == 5
    assert sleeps == [2.0] * 4


def test_succeeds_immediately_without_sleeping() -> None:
    probe = Probe(succeed_on=1)
    sleeps: list[float] = []
    assert wait_until_ready(probe, sleep=sleeps.append) == 1
    assert not sleeps


def test_times_out_after_max_attempts() -> None:
    probe = Probe(succeed_on=None)
    sleeps: list[float] = []
    with pytest.raises(ReadinessTimeout) as excinfo:
        wait_until_ready(probe, max_attempts=3, interval=0.5, sleep=sleeps.append)

    assert probe.calls == 3
    assert sleeps == [0.5, 0.5]
    assert excinfo.value.output == "Login timeout expired (1)"
    assert isinstance(excinfo.value, PipelineError)
    assert isinstance(excinfo.value, TimeoutError)


def test_succeeds_on_last_attempt() -> None:
    probe = Probe(succeed_on=3)
    assert wait_until_ready(probe, max_attempts=3, sleep=lambda _: None) == 3


def test_first_failure_output_is_printed_once(capsys: pytest.CaptureFixture[str]) -> None:
    probe = Probe(succeed_on=4)
    wait_until_ready(probe, sleep=lambda _: None)
    out = capsys.readouterr().out
    assert out.count("Login timeout expired") == 1
    assert "Login timeout expired (1)" in out


@pytest.mark.parametrize("attempts, interval", [(0, 1.0), (-1, 1.0), (3, -0.1)])
def test_rejects_invalid_arguments(attempts: int, interval: float) -> None:
    probe = Probe(succeed_on=1)
    with pytest.raises(ValueError):
        wait_until_ready(probe, max_attempts=attempts, interval=interval)
    assert probe.calls == 0

from __future__ import annotations

import asyncio

from app.delivery.countdown import Countdown


async def _yield(_: float) -> None:
    await asyncio.sleep(0)


def test_threshold_warnings_fire_once_each() -> None:
    warnings: list[int] = []
    expired: list[bool] = []
    countdown = Countdown(302, on_expire=lambda: expired.append(True), on_warning=warnings.append)

    for _ in range(302):
        countdown.tick()
    countdown.tick()

    assert warnings == [300, 120, 60]
    assert expired == [True]
    assert countdown.remaining == 0


def test_thresholds_above_the_starting_time_never_fire() -> None:
    warnings: list[int] = []
    countdown = Countdown(90, on_expire=lambda: None, on_warning=warnings.append)
    for _ in range(30):
        countdown.tick()
    assert warnings == [60]
    assert countdown.fired_thresholds == {60}


def test_resume_does_not_repeat_warnings() -> None:
    warnings: list[int] = []

    async def scenario() -> None:
        countdown = Countdown(
            125,
            on_expire=lambda: None,
            on_warning=warnings.append,
            sleep=_yield,
        )
        countdown.start()
        while countdown.remaining > 118:
            await asyncio.sleep(0)
        countdown.stop()
        paused_at = countdown.remaining
        for _ in range(5):
            await asyncio.sleep(0)
        assert countdown.remaining == paused_at
        assert not countdown.running

        countdown.start()
        while countdown.remaining > 50:
            await asyncio.sleep(0)
        countdown.stop()

    asyncio.run(scenario())
    assert warnings == [120, 60]


def test_run_loop_expires_and_stops() -> None:
    ticks: list[int] = []
    expirations: list[int] = []

    async def scenario() -> Countdown:
        countdown = Countdown(3, on_expire=lambda: expirations.append(1), on_tick=ticks.append, sleep=_yield)
        countdown.start()
        for _ in range(20):
            await asyncio.sleep(0)
        return countdown

    countdown = asyncio.run(scenario())
    assert ticks == [2, 1, 0]
    assert expirations == [1]
    assert countdown.expired
    assert not countdown.running


def test_stop_from_expiry_callback_does_not_cancel_itself() -> None:
    seen: list[str] = []

    async def scenario() -> None:
        holder: dict[str, Countdown] = {}

        def on_expire() -> None:
            holder["countdown"].stop()
            seen.append("expired")

        countdown = Countdown(1, on_expire=on_expire, sleep=_yield)
        holder["countdown"] = countdown
        countdown.start()
        for _ in range(10):
            await asyncio.sleep(0)

    asyncio.run(scenario())
    assert seen == ["expired"]


def test_start_is_noop_once_expired() -> None:
    async def scenario() -> bool:
        countdown = Countdown(0, on_expire=lambda: None)
        countdown.start()
        return countdown.running

    assert asyncio.run(scenario()) is False

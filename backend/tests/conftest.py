from __future__ import annotations

import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from app.core.config import Settings


def make_holder(wallet: str, *, outcome_index: int, amount: float = 100.0) -> dict[str, object]:
    return {
        "proxyWallet": wallet,
        "bio": "",
        "asset": f"asset-{outcome_index}",
        "pseudonym": f"trader-{wallet}",
        "amount": amount,
        "displayUsernamePublic": True,
        "outcomeIndex": outcome_index,
        "name": f"name-{wallet}",
        "profileImage": "",
        "profileImageOptimized": "",
    }


@pytest.fixture
def sample_holders_payload() -> list[dict[str, object]]:
    path = Path(__file__).parent / "data" / "sample_holders.json"
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture
def large_holders_payload() -> list[dict[str, object]]:
    """Two outcome groups with 20 holders each, wallets tagged by group and position."""

    return [
        {
            "token": "token-yes",
            "holders": [make_holder(f"0xyes{i:02d}", outcome_index=0) for i in range(20)],
        },
        {
            "token": "token-no",
            "holders": [make_holder(f"0xno{i:02d}", outcome_index=1) for i in range(20)],
        },
    ]


@pytest.fixture
def test_settings(monkeypatch) -> Settings:
    settings = Settings(
        activity_batch_delay_seconds=0,
        query_runtime="client",
        dashboard_api_base_url="http://dashboard.test/api",
    )
    monkeypatch.setattr("app.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("app.core.config.settings", settings)
    return settings


class SleepRecorder:
    """Async stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()

"""Pytest fixtures for TWAP oracle tests."""

import pytest
from unittest.mock import AsyncMock

from twap_oracle.auth import AuthContext, Permissions, authorize_attester
from twap_oracle.oracle import OracleConfig, TwapOracle
from twap_oracle.wad import to_wad


def wad(value) -> int:
    return to_wad(str(value))


@pytest.fixture
def config():
    # interval=60s, capacity=30, maxDelta=3600, maxRatio=2.0
    return OracleConfig(
        sample_interval=60,
        capacity=30,
        max_delta_seconds=3600,
        max_relative_price_change=wad("2.0"),
    )


@pytest.fixture
def oracle(config):
    return TwapOracle(config, authorize=authorize_attester)


@pytest.fixture
def unguarded_oracle():
    return TwapOracle(OracleConfig(sample_interval=60, capacity=3))


@pytest.fixture
def attester():
    return AuthContext(
        account_id="attester-1",
        username="vol-desk",
        role="attester",
        permissions={Permissions.VOLATILITY_ATTEST},
        token_jti="jti-attester",
    )


@pytest.fixture
def reader():
    return AuthContext(
        account_id="reader-1",
        username="reader",
        role="reader",
        permissions={Permissions.ORACLE_READ},
        token_jti="jti-reader",
    )


@pytest.fixture
def mock_redis():
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.setex = AsyncMock()
    redis.exists = AsyncMock(return_value=False)
    return redis

"""TWAP oracle service entry point."""

import asyncio
import json
import signal
from typing import Optional

import redis.asyncio as redis
from nats.aio.msg import Msg
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from .api import OracleApiServer
from .auth import AuthError, AuthService, authorize_attester
from .config import Settings, get_settings
from .models import Base
from .nats_client import OracleNatsClient
from .observability import configure_logging, init_metrics, init_tracing
from .oracle import OracleError, TwapOracle, event_to_dict
from .resilience import RetryConfig, with_retry
from .service import OracleService, parse_int
from .store import SnapshotStore

ORACLE_NAME = "default"


def async_database_url(url: str) -> str:
    return url.replace("postgres://", "postgresql+asyncpg://", 1)


def decode_message(msg: Msg) -> dict:
    data = json.loads(msg.data.decode())
    if not isinstance(data, dict):
        raise ValueError("Message body must be a JSON object")
    return data


class OracleApplication:
    """Wires the oracle to NATS, HTTP, Postgres and Redis."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.running = False
        self.logger = configure_logging("twap-oracle", self.settings.log_level)

        init_tracing("twap-oracle")
        init_metrics()

        self.engine = create_async_engine(
            async_database_url(self.settings.database_url),
            pool_size=5,
            max_overflow=5,
        )
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False)
        self.store = SnapshotStore(self.session_factory)

        self.redis = redis.from_url(self.settings.redis_url)
        self.auth_service = AuthService(self.redis, secret=self.settings.jwt_secret)
        self.nats = OracleNatsClient(self.settings.nats_url)

        self.service: Optional[OracleService] = None
        self.api: Optional[OracleApiServer] = None
        self._publish_tasks: set = set()

    async def _load_oracle(self) -> TwapOracle:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        snapshot = await self.store.load(ORACLE_NAME)
        if snapshot is None:
            self.logger.info("oracle_created", name=ORACLE_NAME)
            return TwapOracle(self.settings.oracle_config(), authorize=authorize_attester)

        if snapshot.config != self.settings.oracle_config():
            # parameters are fixed for the life of an instance
            self.logger.warning("oracle_config_ignored", name=ORACLE_NAME,
                                persisted=str(snapshot.config))
        return TwapOracle.restore(snapshot, authorize=authorize_attester)

    async def start(self) -> None:
        self.logger.info("starting_twap_oracle")

        oracle = await with_retry("oracle_load", self._load_oracle, config=RetryConfig(max_retries=5))
        oracle.add_listener(self._on_event)
        self.service = OracleService(
            oracle,
            name=ORACLE_NAME,
            store=self.store,
            snapshot_every=self.settings.snapshot_every_submissions,
        )

        self.api = OracleApiServer(
            self.service,
            auth_service=self.auth_service,
            host=self.settings.http_host,
            port=self.settings.http_port,
            session_factory=self.session_factory,
        )
        await self.api.start()
        self.logger.info("http_server_started", port=self.settings.http_port)

        await with_retry(
            "nats_connect",
            self.nats.connect,
            config=RetryConfig(max_retries=5),
        )
        await self.nats.subscribe(self.settings.price_subject, self.handle_price, queue="twap-oracle")
        await self.nats.subscribe(self.settings.query_subject, self.handle_query)

        self.running = True
        self.api.set_healthy(True)
        self.logger.info("twap_oracle_started")

    async def stop(self) -> None:
        self.logger.info("stopping_twap_oracle")
        if self.api is not None:
            self.api.set_healthy(False)
            await self.api.stop()
        await self.nats.close()
        # drained handlers may have queued updates the batch has not saved yet
        if self.service is not None:
            await self.service.flush()
        await self.redis.close()
        await self.engine.dispose()
        self.running = False
        self.logger.info("twap_oracle_stopped")

    def _on_event(self, event) -> None:
        if not self.nats.is_connected:
            return
        task = asyncio.get_running_loop().create_task(
            self.nats.publish(self.settings.events_subject, event_to_dict(event))
        )
        self._publish_tasks.add(task)
        task.add_done_callback(self._publish_tasks.discard)

    async def handle_price(self, msg: Msg) -> None:
        """Handle a relayed price observation."""
        try:
            data = decode_message(msg)
            response = {"success": True, **await self.service.submit(data)}
        except OracleError as e:
            response = {"success": False, **e.to_dict()}
        except ValueError as e:
            self.logger.warning("price_message_invalid", error=str(e))
            response = {"success": False, "error": str(e), "code": "BAD_REQUEST"}
        await self.nats.reply(msg, response)

    async def handle_query(self, msg: Msg) -> None:
        """Handle TWAP, volatility, state and attestation requests."""
        try:
            data = decode_message(msg)
            response = {"success": True, **await self._dispatch(data)}
        except OracleError as e:
            response = {"success": False, **e.to_dict()}
        except AuthError as e:
            response = {"success": False, "error": e.message, "code": e.code}
        except ValueError as e:
            response = {"success": False, "error": str(e), "code": "BAD_REQUEST"}
        await self.nats.reply(msg, response)

    async def _dispatch(self, data: dict) -> dict:
        query = data.get("query")
        if query == "twap":
            return await self.service.twap(parse_int(data, "period"))
        if query == "volatility":
            return await self.service.volatility(parse_int(data, "lookback"))
        if query == "state":
            return self.service.state()
        if query == "attest":
            async with self.session_factory() as db:
                auth = await self.auth_service.validate_token(data.get("token", ""), db)
            return await self.service.attest(auth, data)
        raise ValueError(f"Unknown query: {query!r}")


async def main():
    app = OracleApplication()

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_requested.set)

    await app.start()
    await stop_requested.wait()
    await app.stop()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()

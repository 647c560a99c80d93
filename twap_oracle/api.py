"""HTTP surface for the oracle: queries, submissions, attestation, metrics and health."""

from typing import Optional

import structlog
from aiohttp import web

from .auth import AuthError, AuthService
from .observability import metrics_handler
from .oracle import GuardRejection, NotEnoughSamples, OracleError, StaleSample, Unauthorized
from .service import OracleService, parse_int

logger = structlog.get_logger()

AUTH_STATUS = {
    "FORBIDDEN": 403,
    "TOKEN_REVOKED": 401,
    "TOKEN_EXPIRED": 401,
    "INVALID_TOKEN": 401,
    "MISSING_TOKEN": 401,
}


def oracle_error_status(error: OracleError) -> int:
    if isinstance(error, Unauthorized):
        return 403
    if isinstance(error, GuardRejection):
        return 422
    if isinstance(error, (NotEnoughSamples, StaleSample)):
        return 409
    return 400


def error_response(message: str, code: str, status: int) -> web.Response:
    return web.json_response({"success": False, "error": message, "code": code}, status=status)


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except OracleError as e:
        return error_response(e.message, e.code, oracle_error_status(e))
    except AuthError as e:
        logger.warning("auth_failed", path=request.path, code=e.code)
        return error_response(e.message, e.code, AUTH_STATUS.get(e.code, 403))
    except ValueError as e:
        return error_response(str(e), "BAD_REQUEST", 400)


class OracleApiServer:
    """aiohttp application serving the oracle."""

    def __init__(self, service: OracleService, auth_service: Optional[AuthService] = None,
                 host: str = "0.0.0.0", port: int = 8080, session_factory=None):
        self.service = service
        self.auth_service = auth_service
        self.session_factory = session_factory
        self.host = host
        self.port = port
        self._healthy = True
        self._runner: Optional[web.AppRunner] = None
        self.app = web.Application(middlewares=[error_middleware])
        self.app.router.add_get("/metrics", metrics_handler)
        self.app.router.add_get("/health", self.health_handler)
        self.app.router.add_get("/twap", self.twap_handler)
        self.app.router.add_get("/volatility", self.volatility_handler)
        self.app.router.add_get("/state", self.state_handler)
        self.app.router.add_post("/prices", self.submit_handler)
        self.app.router.add_post("/volatility/attest", self.attest_handler)

    async def health_handler(self, request: web.Request) -> web.Response:
        if self._healthy:
            return web.json_response({"status": "healthy"})
        return web.json_response({"status": "unhealthy"}, status=503)

    async def twap_handler(self, request: web.Request) -> web.Response:
        period = parse_int(request.query, "period")
        return web.json_response({"success": True, **await self.service.twap(period)})

    async def volatility_handler(self, request: web.Request) -> web.Response:
        lookback = parse_int(request.query, "lookback")
        return web.json_response({"success": True, **await self.service.volatility(lookback)})

    async def state_handler(self, request: web.Request) -> web.Response:
        return web.json_response({"success": True, **self.service.state()})

    async def submit_handler(self, request: web.Request) -> web.Response:
        data = await self._json_body(request)
        return web.json_response({"success": True, **await self.service.submit(data)})

    async def attest_handler(self, request: web.Request) -> web.Response:
        auth = await self._authenticate(request)
        data = await self._json_body(request)
        return web.json_response({"success": True, **await self.service.attest(auth, data)})

    async def _authenticate(self, request: web.Request):
        if self.auth_service is None:
            raise AuthError("Attestation is disabled", "FORBIDDEN")
        header = request.headers.get("Authorization", "")
        if not header.startswith("Bearer "):
            raise AuthError("Missing bearer token", "MISSING_TOKEN")
        token = header[len("Bearer "):]
        if self.session_factory is None:
            return await self.auth_service.validate_token(token)
        async with self.session_factory() as db:
            return await self.auth_service.validate_token(token, db)

    @staticmethod
    async def _json_body(request: web.Request) -> dict:
        try:
            data = await request.json()
        except ValueError:
            raise ValueError("Request body must be JSON")
        if not isinstance(data, dict):
            raise ValueError("Request body must be a JSON object")
        return data

    def set_healthy(self, healthy: bool) -> None:
        self._healthy = healthy

    async def start(self) -> None:
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()

"""FitLedger Server - Entry point.

Runs the JSON routes, the health-sample ingestion routes and the MCP server
with HTTP transport. The balance engine's periodic refresh runs for the
lifetime of the app.
"""

import contextlib
import logging
import os
from datetime import date

import uvicorn
from pydantic import TypeAdapter
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route

from .core.errors import FitLedgerError, PersistenceError
from .core.models import EnergySample, WeightSample, WorkoutSample
from .shell.mcp_server import error_response, get_tracker, mcp


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

_workouts_adapter = TypeAdapter(list[WorkoutSample])


def _error(e: Exception) -> JSONResponse:
    status_code = 503 if isinstance(e, PersistenceError) else 400
    return JSONResponse(error_response(e), status_code=status_code)


def _path_date(request: Request) -> date:
    try:
        return date.fromisoformat(request.path_params["date"])
    except ValueError:
        raise ValueError("Invalid date format. Use YYYY-MM-DD.") from None


# ==================== Route Handlers ====================


async def health_check(request: Request) -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse({"status": "healthy", "service": "fitledger"})


async def get_day(request: Request) -> JSONResponse:
    """A day's nutrition aggregate."""
    try:
        day = await get_tracker().get_day(_path_date(request))
    except (FitLedgerError, ValueError) as e:
        return _error(e)
    return JSONResponse(day.model_dump(mode="json"))


async def get_balance(request: Request) -> JSONResponse:
    """A day's calorie balance."""
    try:
        balance = await get_tracker().get_balance(_path_date(request))
    except (FitLedgerError, ValueError) as e:
        return _error(e)
    return JSONResponse(balance.model_dump(mode="json"))


async def get_goal(request: Request) -> JSONResponse:
    try:
        goal = await get_tracker().get_goal()
    except FitLedgerError as e:
        return _error(e)
    if goal is None:
        return JSONResponse({"error": "No active goal"}, status_code=404)
    return JSONResponse(goal.model_dump(mode="json"))


async def get_progress(request: Request) -> JSONResponse:
    try:
        report = await get_tracker().get_progress()
    except FitLedgerError as e:
        return _error(e)
    return JSONResponse(report.model_dump(mode="json"))


async def get_summary(request: Request) -> JSONResponse:
    """Read-only reminder values for today, polled by a notification scheduler."""
    try:
        summary = await get_tracker().get_reminder_summary()
    except FitLedgerError as e:
        return _error(e)
    return JSONResponse(summary.model_dump(mode="json"))


async def post_energy_sample(request: Request) -> JSONResponse:
    """Receive a day's resting/active energy from a health export app."""
    try:
        sample = EnergySample(**await request.json())
        await get_tracker().ingest_energy_sample(sample)
    except (FitLedgerError, ValueError) as e:
        return _error(e)
    return JSONResponse({"status": "accepted", "sample_date": sample.sample_date.isoformat()}, status_code=202)


async def post_weight_sample(request: Request) -> JSONResponse:
    """Receive a body weight measurement from a health export app."""
    try:
        sample = WeightSample(**await request.json())
        profile = await get_tracker().ingest_weight_sample(sample)
    except (FitLedgerError, ValueError) as e:
        return _error(e)
    return JSONResponse(
        {"status": "accepted", "profile_updated": profile is not None},
        status_code=202,
    )


async def post_workouts(request: Request) -> JSONResponse:
    """Receive a batch of workouts from a health export app."""
    try:
        workouts = _workouts_adapter.validate_python(await request.json())
        days = await get_tracker().ingest_workouts(workouts)
    except (FitLedgerError, ValueError) as e:
        return _error(e)
    return JSONResponse(
        {
            "status": "accepted",
            "workouts": len(workouts),
            "days_updated": [d.log_date.isoformat() for d in days],
        },
        status_code=202,
    )


# ==================== Create ASGI App ====================


def create_app() -> Starlette:
    """Create the Starlette application with MCP at root.

    The MCP streamable_http_app() handles /mcp/ internally when mounted at root.
    Its lifespan wraps the balance engine's start/stop.
    """
    mcp_app = mcp.streamable_http_app()

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        async with mcp_app.router.lifespan_context(app):
            engine = get_tracker().engine
            engine.start()
            try:
                yield
            finally:
                await engine.stop()

    routes = [
        Route("/health", health_check, methods=["GET"]),
        Route("/days/{date}", get_day, methods=["GET"]),
        Route("/balance/{date}", get_balance, methods=["GET"]),
        Route("/goal", get_goal, methods=["GET"]),
        Route("/progress", get_progress, methods=["GET"]),
        Route("/summary", get_summary, methods=["GET"]),
        Route("/samples/energy", post_energy_sample, methods=["POST"]),
        Route("/samples/weight", post_weight_sample, methods=["POST"]),
        Route("/samples/workouts", post_workouts, methods=["POST"]),
        # Mount MCP app at root - it handles /mcp/ path internally
        Mount("/", app=mcp_app),
    ]

    return Starlette(
        routes=routes,
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=["http://localhost:5173"],
                allow_methods=["GET", "POST", "OPTIONS"],
                allow_headers=["*"],
            ),
        ],
        lifespan=lifespan,
    )


# Create app at module level for uvicorn
app = create_app()


def main() -> None:
    """Run the server."""
    port = int(os.environ.get("PORT", 8080))
    host = os.environ.get("HOST", "0.0.0.0")

    logger.info("Starting FitLedger server on %s:%d", host, port)

    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()

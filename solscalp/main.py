"""SolScalp — application entry point.

Boots the FastAPI internal server and provides the CLI entry point for
the serve, monitor and once modes.
"""

import logging

from fastapi import FastAPI

from solscalp.api.routers import router

app = FastAPI(title="SolScalp Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("solscalp")


@app.get("/health")
async def health():
    """Liveness check."""
    return {"status": "ok"}


def build_services(config) -> dict:
    """Wire repositories, clients, the monitor cycle and plan actions."""
    from solscalp.exchange.jupiter_client import JupiterClient
    from solscalp.market.birdeye_client import BirdeyeClient
    from solscalp.monitor.cycle import MonitorCycle
    from solscalp.monitor.execution import SwapExecutor
    from solscalp.monitor.rate_limiter import RateLimiter
    from solscalp.notify.email_notifier import EmailNotifier, PlanNotifier
    from solscalp.plans.actions import PlanActions
    from solscalp.repos.plan_repo import PlanRepo
    from solscalp.repos.price_repo import PriceRepo
    from solscalp.repos.settings_repo import SettingsRepo
    from solscalp.repos.trade_repo import TradeRepo
    from solscalp.repos.wallet_repo import WalletRepo
    from solscalp.wallet.custody import WalletCustody

    plans = PlanRepo(config.db_path)
    settings = SettingsRepo(config.db_path)
    exchange = JupiterClient(config)
    candles = BirdeyeClient(config) if config.birdeye_api_key else None
    executor = SwapExecutor(
        exchange,
        WalletRepo(config.db_path),
        WalletCustody(config.wallet_encryption_key),
    )
    notifier = PlanNotifier(EmailNotifier(config), settings)

    cycle = MonitorCycle(
        plans=plans,
        prices=PriceRepo(config.db_path),
        settings=settings,
        exchange=exchange,
        executor=executor,
        rate_limiter=RateLimiter.from_interval(config.plan_delay_seconds),
        candles=candles,
        notifier=notifier,
        concurrency=config.monitor_concurrency,
    )
    return {
        "cycle": cycle,
        "candles": candles,
        "plan_actions": PlanActions(plans, executor, notifier),
        "trade_repo": TradeRepo(config.db_path),
    }


def _run_cli() -> None:
    """Parse CLI arguments and dispatch to the appropriate mode."""
    import argparse
    import asyncio
    import json
    import signal

    from solscalp.api.routers import configure_routers
    from solscalp.config import load_config
    from solscalp.monitor.runner import MonitorRunner
    from solscalp.repos.db import init_db

    parser = argparse.ArgumentParser(description="SolScalp trade monitor")
    parser.add_argument(
        "--mode",
        choices=["serve", "monitor", "once"],
        default="serve",
        help="serve: API + monitor loop; monitor: loop only; once: single cycle (default: serve)",
    )
    args = parser.parse_args()

    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    init_db(config.db_path)

    services = build_services(config)
    configure_routers(cron_secret=config.cron_secret, **services)
    cycle = services["cycle"]

    if args.mode == "once":
        report = asyncio.run(cycle.run_once())
        print(json.dumps(report.to_dict(), indent=2))
        return

    runner = MonitorRunner(cycle, interval_seconds=config.monitor_interval_seconds)

    def handle_shutdown(signum, frame):
        logger.info("Shutdown signal received, stopping gracefully.")
        runner.stop()

    signal.signal(signal.SIGINT, handle_shutdown)

    if args.mode == "monitor":
        asyncio.run(runner.run())
    else:
        asyncio.run(_serve(runner, config.health_port))


async def _serve(runner, port: int) -> None:
    """Start the API server and the monitor loop concurrently."""
    import asyncio

    import uvicorn

    uvi_config = uvicorn.Config(app, host="0.0.0.0", port=port, log_level="info")
    server = uvicorn.Server(uvi_config)

    async def _run_server():
        try:
            await server.serve()
        finally:
            # uvicorn owns SIGINT while serving
            runner.stop()

    logger.info("SolScalp API on http://localhost:%d", port)
    results = await asyncio.gather(
        _run_server(),
        runner.run(),
        return_exceptions=True,
    )
    logger.info("SolScalp stopped. Results: %s", results)


if __name__ == "__main__":
    _run_cli()

"""
main_orchestrator.py
The main entry point and orchestrator for the FX signal trader.

This module is responsible for:
1. Loading configuration.
2. Setting up all services (Dependency Injection).
3. Running the decision cycle via a scheduler.
4. Handling graceful shutdown.
"""

import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import Any, Optional

from advisor import SignalAdvisor
from config import Config, load_config
from engine import StrategyEngine
from fxbridge import (
    ConfigurationError,
    MetaApiBrokerGateway,
    MetaApiConnector,
    StrategySettings,
    create_market_data_source
)
from llm_client import create_llm_client

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything `setup_dependencies` wires together, kept for shutdown."""
    engine: StrategyEngine
    connector: MetaApiConnector
    market_data: Any
    llm_client: Any

    async def close(self):
        await self.connector.close()
        await self.market_data.close()
        await self.llm_client.close()  # Close httpx clients


class TradingScheduler:
    """
    Manages the main trading loop, calling the engine at a fixed interval.
    """

    def __init__(self,
                 engine: StrategyEngine,
                 settings: StrategySettings,
                 run_interval_seconds: float,
                 auto_execute: bool):
        self._engine = engine
        self._settings = settings
        self._interval = run_interval_seconds
        self._auto_execute = auto_execute
        self._task: Optional[asyncio.Task] = None
        self._running = False

    async def start(self):
        """Starts the scheduler loop."""
        self._running = True
        logger.info(f"TradingScheduler starting. Run interval: {self._interval}s, "
                    f"Auto Execute: {self._auto_execute}")
        self._task = asyncio.create_task(self._run_loop())
        await self._task

    async def run_once(self):
        """Runs a single cycle and logs its outcome."""
        if not self._auto_execute:
            logger.warning("--- AUTO EXECUTION DISABLED: No trades will be executed. ---")

        result = await self._engine.run_cycle(self._settings, auto_execute=self._auto_execute)
        logger.info(f"Cycle outcome: {result.outcome} | signal={result.signal.action} "
                    f"({result.signal.confidence:.2f}) | lot={result.lot_size} | "
                    f"trade={result.executed_trade_id} | reason={result.skipped_reason}")
        return result

    async def _run_loop(self):
        """The main execution loop."""
        while self._running:
            try:
                await self.run_once()
                logger.info(f"--- Decision cycle complete. Waiting {self._interval}s ---")
            except Exception as e:
                logger.exception(f"Decision cycle failed: {e}")
                # Don't crash the loop, wait and try again

            await asyncio.sleep(self._interval)

    async def stop(self):
        """Stops the scheduler loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                logger.info("TradingScheduler stopped.")


def setup_dependencies(cfg: Config) -> Services:
    """
    Initializes all services and wires them together (Dependency Injection).
    """
    logger.info("Setting up dependencies...")

    # 1. Broker session (connects lazily on first query)
    connector = MetaApiConnector.from_config(
        token=cfg.metaapi_token,
        account_id=cfg.metaapi_account_id,
        application_id=cfg.metaapi_application_id,
    )
    broker = MetaApiBrokerGateway(connector)

    # 2. Market data (provider selected by configuration)
    market_data = create_market_data_source(
        cfg.forex_data_provider,
        cfg.market_data_api_key,
        timeout=cfg.http_timeout_seconds,
    )

    # 3. LLM Client (Strategy Pattern)
    llm_kwargs = {"timeout": cfg.http_timeout_seconds}
    if cfg.llm_model:
        llm_kwargs["model"] = cfg.llm_model
    llm_client = create_llm_client(cfg.llm_provider, cfg.llm_api_key, **llm_kwargs)

    # 4. Main Engine
    engine = StrategyEngine(
        market_data=market_data,
        broker=broker,
        advisor=SignalAdvisor(llm_client),
        candle_interval=cfg.candle_interval,
    )

    logger.info("All dependencies initialized successfully.")
    return Services(engine=engine, connector=connector, market_data=market_data, llm_client=llm_client)


async def main():
    """Main application entry point."""
    services: Optional[Services] = None
    scheduler: Optional[TradingScheduler] = None

    try:
        # 1. Load Config
        cfg = load_config()

        # 2. Setup
        services = setup_dependencies(cfg)

        # 3. Run
        scheduler = TradingScheduler(
            services.engine,
            cfg.strategy_settings(),
            run_interval_seconds=cfg.run_interval_seconds,
            auto_execute=cfg.auto_execute,
        )
        await scheduler.start()

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
    except Exception as e:
        logger.exception(f"Application failed to start: {e}")
    finally:
        # 4. Graceful Shutdown
        if scheduler:
            await scheduler.stop()
        if services:
            await services.close()
        logger.info("Application shut down.")


def run():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")


if __name__ == "__main__":
    run()

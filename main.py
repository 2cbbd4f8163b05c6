"""
Hedge Fund Engine - Main Entry Point
Runs trading cycles for a list of symbols, once or on an interval
"""
import argparse
import asyncio
import signal
from typing import List, Optional

from dotenv import load_dotenv
from loguru import logger

from hedgefund.config.settings import Settings
from hedgefund.core.types import CycleRequest, TradeCycleResult
from hedgefund.engine.bootstrap import build_engine, setup_logging
from hedgefund.engine.orchestrator import TradingCycleOrchestrator
from hedgefund.strategies import StrategyKind


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run hedge-fund trading cycles")
    parser.add_argument("--symbols", nargs="+", required=True, help="Symbols to trade, e.g. AAPL MSFT BTC/USD")
    parser.add_argument(
        "--strategy",
        choices=[kind.value for kind in StrategyKind],
        help="Use one strategy instead of the multi-strategy recommendation",
    )
    size = parser.add_mutually_exclusive_group()
    size.add_argument("--notional", type=float, help="Dollar amount per trade")
    size.add_argument("--quantity", type=float, help="Share/unit quantity per trade")
    parser.add_argument("--dry-run", action="store_true", help="Build orders without submitting them")
    parser.add_argument(
        "--loop-seconds",
        type=int,
        default=0,
        help="Repeat every N seconds (0 runs a single pass)",
    )
    return parser.parse_args(argv)


class TradingRunner:
    """Drives the orchestrator from the command line"""

    def __init__(self, engine: TradingCycleOrchestrator, args: argparse.Namespace):
        self.engine = engine
        self.args = args
        self.running = False
        self._stop = asyncio.Event()

    async def run_pass(self) -> List[TradeCycleResult]:
        results = []
        for symbol in self.args.symbols:
            if self._stop.is_set():
                break
            request = CycleRequest(
                symbol=symbol,
                strategy=self.args.strategy,
                notional_amount=self.args.notional,
                quantity=self.args.quantity,
                dry_run=self.args.dry_run,
            )
            result = await self.engine.run_cycle(request)
            results.append(result)

            signal_text = ""
            if result.signal:
                signal_text = f" {result.signal.action.value} ({result.signal.strategy_id}, {result.signal.confidence:.2f})"
            logger.info(f"{symbol}: {result.status.value.upper()}{signal_text} {result.reason or result.error or ''}")
        return results

    async def run(self):
        """Main loop"""
        self.running = True
        await self.engine.learning.warm_start(list(self.engine.scorer.strategies))

        while self.running:
            await self.run_pass()
            await self.engine.flush_pending()

            if self.args.loop_seconds <= 0:
                break
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.args.loop_seconds)
            except asyncio.TimeoutError:
                continue

        logger.info(f"Analytics: {self.engine.recorder.get_performance_metrics()}")

    def stop(self):
        logger.info("Interrupt received, shutting down...")
        self.running = False
        self._stop.set()

    async def shutdown(self):
        """Graceful shutdown"""
        logger.info("Shutting down hedge fund engine...")
        self.running = False
        await self.engine.flush_pending()
        await self.engine.close()
        logger.info("Shutdown complete")


async def main(argv: Optional[List[str]] = None):
    """Main entry point"""
    args = parse_args(argv)
    load_dotenv()
    settings = Settings.load()
    setup_logging(settings.logging)

    logger.info("=" * 60)
    logger.info("HEDGE FUND ENGINE STARTING")
    logger.info(f"Symbols: {', '.join(args.symbols)} | Mode: {'PAPER' if settings.alpaca.paper else 'LIVE'}")
    logger.info("=" * 60)

    runner = TradingRunner(build_engine(settings), args)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, runner.stop)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            signal.signal(sig, lambda *_: runner.stop())

    try:
        await runner.run()
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        raise
    finally:
        await runner.shutdown()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()

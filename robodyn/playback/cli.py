"""Command-line entry point: ``robodyn-playback``."""

from __future__ import annotations

import argparse
import logging
import signal

import robodyn.config as cfg
from robodyn.config import TRACE
from robodyn.playback.controller import PlaybackMode
from robodyn.playback.runner import PlaybackRunner, RunnerConfig

logger = logging.getLogger("robodyn.playback.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Real-time TOPP-RA trajectory playback for the reference arm"
    )
    parser.add_argument(
        "--mode",
        choices=[m.value for m in PlaybackMode],
        default=PlaybackMode.CONTINUOUS.value,
        help="Playback mode (default: continuous)",
    )
    parser.add_argument(
        "--rate-hz", type=float, default=cfg.TICK_RATE_HZ, help="Tick rate in Hz"
    )
    parser.add_argument(
        "--duration", type=float, default=None, help="Stop after this many seconds"
    )
    parser.add_argument(
        "--seed", type=int, default=None, help="Seed for random target sampling"
    )
    parser.add_argument(
        "--high-priority",
        action="store_true",
        help="Try to raise the process priority",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity; -v=INFO, -vv=DEBUG, -vvv=TRACE",
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", help="Only log warnings and errors"
    )
    parser.add_argument(
        "--log-level",
        choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set specific log level",
    )
    return parser


def resolve_log_level(args: argparse.Namespace) -> int:
    """--log-level wins, then -v/-q, then ROBODYN_TRACE, then the configured default."""
    if args.log_level:
        if args.log_level == "TRACE":
            cfg.TRACE_ENABLED = True
            return TRACE
        return getattr(logging, args.log_level)
    if args.verbose >= 3:
        cfg.TRACE_ENABLED = True
        return TRACE
    if args.verbose == 2:
        return logging.DEBUG
    if args.verbose == 1:
        return logging.INFO
    if args.quiet:
        return logging.WARNING
    if cfg.TRACE_ENABLED:
        return TRACE
    level = logging.getLevelName(cfg.LOG_LEVEL_DEFAULT)
    return level if isinstance(level, int) else logging.INFO


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    log_level = resolve_log_level(args)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    third_party_level = max(log_level, logging.INFO)
    logging.getLogger("toppra").setLevel(third_party_level)
    logging.getLogger("numba").setLevel(third_party_level)

    if args.rate_hz <= 0:
        logger.error("--rate-hz must be positive, got %s", args.rate_hz)
        return 2

    # Compile numba kernels before the loop starts
    from robodyn.utils.warmup import warmup_jit

    warmup_jit()

    config = RunnerConfig(
        mode=PlaybackMode(args.mode),
        tick_interval=1.0 / args.rate_hz,
        run_duration_s=args.duration,
        seed=args.seed,
        high_priority=bool(args.high_priority),
    )

    runner: PlaybackRunner | None = None

    def handle_sigterm(signum, frame):
        logger.info("Received SIGTERM, shutting down...")
        if runner is not None:
            runner.stop()
        raise SystemExit(0)

    signal.signal(signal.SIGTERM, handle_sigterm)

    try:
        runner = PlaybackRunner(config)
    except (RuntimeError, ValueError) as e:
        logger.error("Failed to create playback runner: %s", e)
        return 1

    try:
        runner.start()
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        runner.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

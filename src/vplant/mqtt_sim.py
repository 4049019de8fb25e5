#!/usr/bin/env python3
# mqtt_sim.py
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import time
from dataclasses import asdict
from typing import List, Optional

from aiomqtt import Client, MqttError

from vplant.config import SimulatorConfig
from vplant.simulation import PlantSimulator
from vplant.store import MqttStateStore, StoreError

log = logging.getLogger("vplant")


# ============================================================
# Logging
# ============================================================
def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="[%(asctime)s] %(message)s",
        datefmt="%H:%M:%S",
    )


# ============================================================
# Config
# ============================================================
def load_config(args: argparse.Namespace) -> SimulatorConfig:
    cfg = SimulatorConfig.from_json_file(args.config) if args.config else SimulatorConfig()
    overrides = {
        "random_seed": args.seed,
        "update_interval_ms": args.interval_ms,
        "chargers_count": args.chargers,
    }
    raw = asdict(cfg)
    raw.update({k: v for k, v in overrides.items() if v is not None})
    return SimulatorConfig.from_raw(raw)


# ============================================================
# Tasks
# ============================================================
async def listener_task(sim: PlantSimulator, store: MqttStateStore) -> None:
    async for key, value, ack in store.messages():
        await sim.handle_command(key, value, ack)


async def ticker_task(sim: PlantSimulator, stop_event: asyncio.Event) -> None:
    period_s = sim.cfg.update_interval_ms / 1000.0
    while not stop_event.is_set():
        started = time.monotonic()
        await sim.tick(time.time())
        cost = time.monotonic() - started
        # overruns are not caught up, the next tick just sees a larger dt
        await asyncio.sleep(max(0.0, period_s - cost))


async def run_connection(
    client: Client,
    args: argparse.Namespace,
    cfg: SimulatorConfig,
    sim: Optional[PlantSimulator],
    stop_event: asyncio.Event,
) -> PlantSimulator:
    store = MqttStateStore(client, args.base_topic, out_jsonl=args.out)
    try:
        await store.subscribe(("#",))
        early = await store.load_retained(args.restore_timeout)

        if sim is None:
            sim = PlantSimulator(cfg, store)
            # commands seen before the model exists are acknowledged only
            for key, value, ack in early:
                await sim.handle_command(key, value, ack)
            await sim.init(time.time())
        else:
            sim.attach_store(store)
            for key, value, ack in early:
                await sim.handle_command(key, value, ack)
            await sim.publisher.publish("info.connection", True)
            await sim.publish_all(time.time())

        tasks: List[asyncio.Task] = [
            asyncio.create_task(listener_task(sim, store)),
            asyncio.create_task(ticker_task(sim, stop_event)),
            asyncio.create_task(stop_event.wait()),
        ]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        for t in done:
            if not t.cancelled() and t.exception() is not None:
                raise t.exception()

        if stop_event.is_set():
            try:
                await store.write("info.connection", False, ack=True)
            except StoreError as e:
                log.warning(f"[MAIN] could not publish disconnect: {e!r}")
        return sim
    finally:
        store.close()


async def run(args: argparse.Namespace) -> None:
    stop_event = asyncio.Event()
    install_signal_handlers(stop_event)

    cfg = load_config(args)
    sim: Optional[PlantSimulator] = None

    log.info(f"[MAIN] host={args.host} port={args.port} base_topic={args.base_topic}")
    log.info(
        f"[MAIN] chargers={cfg.chargers_count} interval={cfg.update_interval_ms}ms "
        f"seed={cfg.random_seed} scenario_duration={cfg.scenario_duration_s:.0f}s"
    )
    if args.out:
        log.info(f"[MAIN] out={os.path.abspath(args.out)}")

    while not stop_event.is_set():
        try:
            log.info(f"[MAIN] connecting to mqtt://{args.host}:{args.port}")
            async with Client(hostname=args.host, port=args.port) as client:
                log.info("[MAIN] connected")
                sim = await run_connection(client, args, cfg, sim, stop_event)
        except MqttError as e:
            log.warning(f"[MAIN] MQTT error: {e!r} (retry in 1s)")
            await asyncio.sleep(1.0)
        except Exception as e:
            log.warning(f"[MAIN] Unexpected error: {e!r} (retry in 1s)")
            await asyncio.sleep(1.0)

    log.info("[MAIN] stopped")


# ============================================================
# Main
# ============================================================
def install_signal_handlers(stop_event: asyncio.Event) -> None:
    def _handler(*_):
        stop_event.set()

    try:
        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
    except ValueError:
        # not in the main thread
        pass


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Virtual energy plant (grid, PV, storage, EVCS) over MQTT + JSONL")
    p.add_argument("--host", default="127.0.0.1", help="MQTT broker host")
    p.add_argument("--port", default=1883, type=int, help="MQTT broker port")
    p.add_argument("--base-topic", default="vplant", help="Base topic")

    p.add_argument("--config", default=None, help="JSON file with simulator options")
    p.add_argument("--seed", type=int, default=None, help="Random seed (overrides config)")
    p.add_argument("--interval-ms", type=int, default=None, help="Tick period in ms (overrides config)")
    p.add_argument("--chargers", type=int, default=None, help="Number of charge points (overrides config)")

    p.add_argument("--out", default="out/vplant_traffic.jsonl", help="Output JSONL (empty to disable)")
    p.add_argument("--restore-timeout", type=float, default=1.0, help="Seconds of silence that end the restore")
    p.add_argument("--log-level", default="INFO", help="Log level")
    return p.parse_args(argv)


def main() -> None:
    args = parse_args()
    setup_logging(args.log_level)
    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()

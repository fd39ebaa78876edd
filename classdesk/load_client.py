#!/usr/bin/env python3
"""
classdesk load client (async)

Drives the registration flow against a server running with GATEWAY=mock:

  register -> create-payment-order -> mockpay emit (server webhooks itself)
           -> [confirm-payment, the late client callback] -> poll status

Each registration records per-step timings; a summary is printed at the end.

Usage:
  python -m classdesk.load_client --base http://localhost:5000 \
                                  --total 200 --concurrency 50

  python -m classdesk.load_client --total 100 --fail-rate 0.1 --callback
"""

import argparse
import asyncio
import random
import string
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

RESOLVED = ("PAID", "FAILED")
STEPS = ("register", "order", "emit", "confirm", "resolve")


class StepFailed(Exception):
    def __init__(self, step: str, cause: Exception) -> None:
        super().__init__(f"{step}: {cause}")
        self.step = step


def _fake_identity() -> Dict[str, str]:
    handle = ''.join(random.choices(string.ascii_lowercase, k=8))
    return {
        "fullName": f"Load {handle.title()}",
        "email": f"{handle}@example.com",
        "phone": "+91" + ''.join(random.choices(string.digits, k=10)),
    }


@dataclass
class Run:
    kind: str  # emitted outcome: succeeded | failed | canceled
    outcome: str = "ERROR"  # PAID | FAILED | TIMEOUT | ERROR
    timings: Dict[str, float] = field(default_factory=dict)
    err: Optional[str] = None


def _percentile(values: List[float], p: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    idx = round(p / 100 * (len(ordered) - 1))
    return ordered[min(len(ordered) - 1, max(0, idx))]


@dataclass
class Report:
    runs: List[Run] = field(default_factory=list)

    def count(self, outcome: str) -> int:
        return sum(1 for r in self.runs if r.outcome == outcome)

    def step_latencies(self, step: str) -> List[float]:
        return [r.timings[step] for r in self.runs if step in r.timings]

    def print(self, wall_s: float) -> None:
        total = len(self.runs)
        print("\n=== classdesk load report ===")
        print("  ".join(
            f"{o}: {self.count(o)}"
            for o in ("PAID", "FAILED", "TIMEOUT", "ERROR")
        ) + f"  (of {total})")

        print(f"{'step':<10}{'n':>6}{'avg':>9}{'p50':>9}{'p90':>9}{'p99':>9}")
        for step in STEPS:
            lat = self.step_latencies(step)
            if not lat:
                continue
            avg = sum(lat) / len(lat)
            print(
                f"{step:<10}{len(lat):>6}{avg:>9.3f}"
                f"{_percentile(lat, 50):>9.3f}"
                f"{_percentile(lat, 90):>9.3f}"
                f"{_percentile(lat, 99):>9.3f}"
            )
        print(f"wall {wall_s:.2f}s, {total / wall_s:.1f} registrations/s")

        for err in [r.err for r in self.runs if r.err][:5]:
            print(f"  error: {err}")


class Flow:
    def __init__(self, client: httpx.AsyncClient, base: str, *,
                 callback: bool, poll_interval_s: float,
                 poll_timeout_s: float) -> None:
        self.client = client
        self.base = base.rstrip("/")
        self.callback = callback
        self.poll_interval_s = poll_interval_s
        self.poll_timeout_s = poll_timeout_s

    async def _timed(self, run: Run, step: str, coro) -> Any:
        t0 = time.perf_counter()
        try:
            result = await coro
        except (httpx.HTTPError, KeyError, ValueError) as e:
            raise StepFailed(step, e) from e
        run.timings[step] = time.perf_counter() - t0
        return result

    async def _post_json(self, path: str, **kw) -> Dict[str, Any]:
        resp = await self.client.post(f"{self.base}{path}", timeout=30.0, **kw)
        resp.raise_for_status()
        return resp.json()

    async def _await_resolution(self, reference_id: str) -> str:
        deadline = time.perf_counter() + self.poll_timeout_s
        while time.perf_counter() < deadline:
            resp = await self.client.get(
                f"{self.base}/api/check-payment",
                params={"reference_id": reference_id},
                timeout=10.0,
            )
            if resp.status_code == 200:
                status = resp.json().get("status")
                if status in RESOLVED:
                    return status
            await asyncio.sleep(self.poll_interval_s)
        return "TIMEOUT"

    async def run(self, kind: str) -> Run:
        run = Run(kind=kind)
        try:
            reg = await self._timed(run, "register", self._post_json(
                "/api/register", json=_fake_identity()
            ))
            reference_id = reg["referenceId"]

            order = await self._timed(run, "order", self._post_json(
                "/api/create-payment-order",
                json={"referenceId": reference_id},
            ))
            order_id = order["orderId"]

            emitted = await self._timed(run, "emit", self._post_json(
                f"/mockpay/{order_id}/emit", data={"t": kind}
            ))

            # lands after the webhook; must be a no-op on the server
            if self.callback and kind == "succeeded":
                await self._timed(run, "confirm", self._post_json(
                    "/api/confirm-payment",
                    json={
                        "referenceId": reference_id,
                        "orderId": order_id,
                        "paymentId": emitted["paymentId"],
                        "signature": emitted["signature"],
                    },
                ))

            run.outcome = await self._timed(
                run, "resolve", self._await_resolution(reference_id)
            )
        except StepFailed as e:
            run.err = str(e)
        return run


def _pick_kind(fail_rate: float, cancel_rate: float) -> str:
    x = random.random()
    if x < fail_rate:
        return "failed"
    if x < fail_rate + cancel_rate:
        return "canceled"
    return "succeeded"


async def run_load(base: str, total: int, concurrency: int, *,
                   fail_rate: float = 0.0, cancel_rate: float = 0.0,
                   callback: bool = False, poll_interval_s: float = 0.05,
                   poll_timeout_s: float = 10.0,
                   transport: Optional[httpx.AsyncBaseTransport] = None
                   ) -> Report:
    report = Report()
    sem = asyncio.Semaphore(concurrency)
    limits = httpx.Limits(
        max_connections=concurrency, max_keepalive_connections=concurrency
    )
    async with httpx.AsyncClient(
        limits=limits, transport=transport,
        headers={"User-Agent": "classdesk-load/1.0"},
    ) as client:
        flow = Flow(client, base, callback=callback,
                    poll_interval_s=poll_interval_s,
                    poll_timeout_s=poll_timeout_s)

        async def one() -> None:
            async with sem:
                report.runs.append(
                    await flow.run(_pick_kind(fail_rate, cancel_rate))
                )

        await asyncio.gather(*(one() for _ in range(total)))
    return report


def main():
    ap = argparse.ArgumentParser(description="classdesk load client")
    ap.add_argument("--base", default="http://localhost:5000")
    ap.add_argument("--total", type=int, default=100,
                    help="registrations to run")
    ap.add_argument("--concurrency", type=int, default=20)
    ap.add_argument("--fail-rate", type=float, default=0.0,
                    help="fraction of payments emitted as failed")
    ap.add_argument("--cancel-rate", type=float, default=0.0,
                    help="fraction of payments emitted as canceled")
    ap.add_argument("--callback", action="store_true",
                    help="send the client callback after the webhook")
    ap.add_argument("--poll-interval", type=float, default=0.05)
    ap.add_argument("--poll-timeout", type=float, default=10.0)
    args = ap.parse_args()

    if args.fail_rate + args.cancel_rate > 1.0:
        ap.error("--fail-rate + --cancel-rate must not exceed 1.0")

    t0 = time.perf_counter()
    report = asyncio.run(run_load(
        args.base, args.total, args.concurrency,
        fail_rate=args.fail_rate,
        cancel_rate=args.cancel_rate,
        callback=args.callback,
        poll_interval_s=args.poll_interval,
        poll_timeout_s=args.poll_timeout,
    ))
    report.print(time.perf_counter() - t0)


if __name__ == "__main__":
    main()

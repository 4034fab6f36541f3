# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/temporal/worker.py

from __future__ import annotations

import asyncio
import concurrent.futures

from temporalio.worker import Worker

from .settings import connect, load_temporal_settings
from .workflows import FleetApplyWorkflow
from .activities import activity_run_phase


async def main() -> None:
    settings = load_temporal_settings()
    client = await connect(settings)

    # activities block on AWS polling
    with concurrent.futures.ThreadPoolExecutor(max_workers=4) as activity_executor:
        worker = Worker(
            client,
            task_queue=settings.task_queue,
            workflows=[FleetApplyWorkflow],
            activities=[activity_run_phase],
            activity_executor=activity_executor,
        )

        print(
            "[avafleet-worker] starting. "
            f"address={settings.address} "
            f"ns={settings.namespace} "
            f"tq={settings.task_queue}"
        )

        # Blocks until SIGINT / SIGTERM
        await worker.run()


if __name__ == "__main__":
    asyncio.run(main())

"""
Example service instrumented with apimon.

Demonstrates:
- Wiring one ApiMonitor into a FastAPI app
- Route templates as endpoint keys (/orders/{order_id})
- Error-rate and latency alerts from simulated traffic

Run with: uvicorn examples.service:app --port 8001
Then open http://localhost:8001/api/evaluation/dashboard
"""

import asyncio
import logging
import random

from fastapi import HTTPException

from apimon import ApiMonitor, Settings
from apimon.logging import configure_logging
from apimon.main import create_app

configure_logging()
logger = logging.getLogger(__name__)

settings = Settings(persistence_enabled=False, sample_interval_seconds=10)
monitor = ApiMonitor(settings)
app = create_app(settings, monitor=monitor)


@app.get("/orders/{order_id}")
async def get_order(order_id: str) -> dict:
    """Mostly fast, occasionally missing."""
    await asyncio.sleep(random.uniform(0.01, 0.1))
    if random.random() < 0.1:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
    return {"order_id": order_id, "status": "shipped"}


@app.post("/orders")
async def create_order(items: list[str]) -> dict:
    """Fails often enough to trip the error-rate alert."""
    await asyncio.sleep(random.uniform(0.05, 0.2))
    if random.random() < 0.2:
        raise HTTPException(status_code=503, detail="Inventory service unavailable")
    logger.info("Created order with %d items", len(items))
    return {"order_id": f"ord_{random.randint(1000, 9999)}", "items": items}


@app.get("/reports/{report_type}")
async def generate_report(report_type: str) -> dict:
    """Slow enough to trip the latency alert now and then."""
    await asyncio.sleep(random.uniform(0.5, 2.5))
    return {"report_type": report_type, "rows": random.randint(10, 1000)}

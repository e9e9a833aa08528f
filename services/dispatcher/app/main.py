"""
Dispatcher Service — FastAPI エントリーポイント

業務用のエンドポイントは持たない。
起動時に DISPATCH_TOPOLOGY に応じたステージワーカーを
バックグラウンドタスクとして開始し、停止時に処理中のメッセージを
待ってから Redis 接続を閉じる。

┌───────────────┐  order-accepted  ┌─────────────────────┐
│ Order Service │ ───── Redis ───▶ │ Dispatcher Service  │
│               │ ◀──── Streams ── │  pack → label       │
└───────────────┘ order-dispatched └─────────────────────┘

起動: uvicorn services.dispatcher.app.main:app --host 0.0.0.0 --port 8001
"""

import logging
import os
import socket
from contextlib import asynccontextmanager

from fastapi import FastAPI

from services.common.broker import RedisStreamBroker
from services.common.log import configure_logging

from .worker import DispatchWorker

logger = logging.getLogger(__name__)

REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")
ORDER_EVENTS_STREAM = os.environ.get("ORDER_EVENTS_STREAM", "order-events")
DISPATCH_PACKED_STREAM = os.environ.get("DISPATCH_PACKED_STREAM", "dispatch-packed")
DISPATCH_TOPOLOGY = os.environ.get("DISPATCH_TOPOLOGY", "fused")
CONSUMER_NAME = os.environ.get("CONSUMER_NAME", socket.gethostname())


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    broker = RedisStreamBroker.from_url(
        REDIS_URL, group="dispatcher-service", consumer=CONSUMER_NAME
    )
    worker = DispatchWorker(
        broker,
        events_stream=ORDER_EVENTS_STREAM,
        packed_stream=DISPATCH_PACKED_STREAM,
    )
    for stream, handlers in worker.subscriptions(DISPATCH_TOPOLOGY):
        broker.start_consumer(stream, handlers)
    logger.info("Dispatcher started with %s topology", DISPATCH_TOPOLOGY)
    yield
    await broker.close()


app = FastAPI(title="Dispatcher Service", lifespan=lifespan)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "dispatcher-service", "topology": DISPATCH_TOPOLOGY}

"""
共通 — ブローカーアダプタ (Redis Streams)

各サービスはこのアダプタ経由でのみブローカーに触れる。
型付きの publish / consume を提供し、接続のライフサイクル
（起動時に接続、停止時に処理中のメッセージを待ってから切断）も管理する。

Redis Pub/Sub は fire-and-forget 方式で、購読者が落ちている間の
メッセージは失われる。ここでは Redis Streams + コンシューマグループを使い、
at-least-once の配送を実現する:

  ┌──────────┐  XADD   ┌──────────────┐  XREADGROUP  ┌──────────┐
  │ Producer │ ──────▶ │ order-events │ ───────────▶ │ Consumer │
  └──────────┘         └──────┬───────┘   XACK ◀──── └──────────┘
                              │ 未 ACK のまま放置されたエントリは
                              │ XCLAIM で再配送
                              ▼
                       order-events.dlq (解釈できない / 再配送上限超過)

ACK はハンドラが正常終了した後にだけ送る (persist-then-ack)。
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError, ResponseError

from .errors import MalformedMessage
from .messages import MESSAGE_TYPES, Message, decode

logger = logging.getLogger(__name__)

DEAD_LETTER_SUFFIX = ".dlq"

Handler = Callable[[Any], Awaitable[Any]]


class Publisher(Protocol):
    async def publish(self, stream: str, message: Message) -> str: ...


def dead_letter_stream(stream: str) -> str:
    return f"{stream}{DEAD_LETTER_SUFFIX}"


class RedisStreamBroker:
    """Redis Streams の上に載せた型付き publish / subscribe"""

    def __init__(
        self,
        redis: aioredis.Redis,
        group: str,
        consumer: str,
        *,
        batch_size: int = 10,
        block_ms: int = 1000,
        claim_idle_ms: int = 30_000,
        max_deliveries: int = 5,
        drain_timeout: float = 5.0,
    ) -> None:
        self.redis = redis
        self.group = group
        self.consumer = consumer
        self.batch_size = batch_size
        self.block_ms = block_ms
        self.claim_idle_ms = claim_idle_ms
        self.max_deliveries = max_deliveries
        self.drain_timeout = drain_timeout
        self._shutdown = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    @classmethod
    def from_url(cls, url: str, group: str, consumer: str, **kwargs) -> "RedisStreamBroker":
        return cls(aioredis.from_url(url, decode_responses=True), group, consumer, **kwargs)

    # ── Publish ──────────────────────────────────

    async def publish(self, stream: str, message: Message) -> str:
        """
        メッセージをストリームに追記する（応答は待たない）。
        失敗時の RedisError は呼び出し側に伝播する。
        """
        entry_id = await self.redis.xadd(stream, message.encode())
        logger.info("Published %s to %s (%s)", message.message_type, stream, entry_id)
        return entry_id

    # ── Consume ──────────────────────────────────

    async def ensure_group(self, stream: str) -> None:
        """コンシューマグループを作成する（既に存在すれば何もしない）。"""
        try:
            await self.redis.xgroup_create(stream, self.group, id="0", mkstream=True)
            logger.info("Created consumer group %s on %s", self.group, stream)
        except ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise

    async def process(
        self,
        stream: str,
        entry_id: str,
        fields: dict[str, str],
        handlers: dict[str, Handler],
    ) -> bool:
        """
        1エントリを処理する。ACK した場合は True を返す。

        - このグループが扱わない既知のタイプ → ACK してスキップ
        - 解釈できないエントリ → デッドレターに転送して ACK
        - ハンドラが例外 → ACK せずに残す（後で再配送される）
        """
        message_type = fields.get("type")
        if message_type in MESSAGE_TYPES and message_type not in handlers:
            await self.redis.xack(stream, self.group, entry_id)
            return True

        try:
            message = decode(fields)
        except MalformedMessage as e:
            logger.warning("Malformed entry %s on %s: %s", entry_id, stream, e)
            await self._dead_letter(stream, entry_id, fields, str(e))
            return True

        try:
            await handlers[message_type](message)
        except Exception:
            logger.exception(
                "Handler for %s failed on entry %s; leaving it pending",
                message_type, entry_id,
            )
            return False

        await self.redis.xack(stream, self.group, entry_id)
        return True

    async def reclaim(self, stream: str, handlers: dict[str, Handler]) -> int:
        """
        claim_idle_ms 以上 ACK されていないエントリを引き取り、再処理する。
        max_deliveries を超えたエントリはデッドレターに送る。
        """
        pending = await self.redis.xpending_range(
            stream, self.group,
            min="-", max="+", count=self.batch_size,
            idle=self.claim_idle_ms,
        )
        reclaimed = 0
        for entry in pending:
            entry_id = entry["message_id"]
            if entry["times_delivered"] > self.max_deliveries:
                fields = await self._read_entry(stream, entry_id)
                await self._dead_letter(
                    stream, entry_id, fields,
                    f"Exceeded {self.max_deliveries} deliveries",
                )
                continue

            claimed = await self.redis.xclaim(
                stream, self.group, self.consumer, self.claim_idle_ms, [entry_id]
            )
            for claimed_id, fields in claimed:
                if claimed_id is None or not fields:
                    # 既に削除されたエントリ (Redis 7 未満では id も nil)
                    await self.redis.xack(stream, self.group, entry_id)
                    continue
                logger.info("Redelivering entry %s on %s", claimed_id, stream)
                await self.process(stream, claimed_id, fields, handlers)
                reclaimed += 1
        return reclaimed

    async def consume(
        self,
        stream: str,
        handlers: dict[str, Handler],
        shutdown_event: asyncio.Event,
    ) -> None:
        """
        shutdown_event がセットされるまでストリームを読み続ける。
        処理中のバッチは最後まで処理してから抜ける。
        """
        await self.ensure_group(stream)
        logger.info("Consuming %s as %s/%s", stream, self.group, self.consumer)

        while not shutdown_event.is_set():
            try:
                await self.reclaim(stream, handlers)
                response = await self.redis.xreadgroup(
                    self.group, self.consumer, {stream: ">"},
                    count=self.batch_size, block=self.block_ms,
                )
                for _name, entries in response or []:
                    for entry_id, fields in entries:
                        await self.process(stream, entry_id, fields, handlers)
            except RedisError:
                logger.exception("Failed to consume from %s; retrying", stream)
                await asyncio.sleep(1.0)

    # ── Lifecycle ────────────────────────────────

    def start_consumer(self, stream: str, handlers: dict[str, Handler]) -> asyncio.Task:
        """consume をバックグラウンドタスクとして開始する。"""
        task = asyncio.create_task(self.consume(stream, handlers, self._shutdown))
        self._tasks.append(task)
        return task

    async def close(self) -> None:
        """コンシューマを停止し（処理中のメッセージは待つ）、接続を閉じる。"""
        self._shutdown.set()
        if self._tasks:
            _done, pending = await asyncio.wait(self._tasks, timeout=self.drain_timeout)
            for task in pending:
                task.cancel()
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks.clear()
        await self.redis.aclose()

    # ── 内部処理 ─────────────────────────────────

    async def _read_entry(self, stream: str, entry_id: str) -> dict[str, str]:
        entries = await self.redis.xrange(stream, min=entry_id, max=entry_id)
        return entries[0][1] if entries else {}

    async def _dead_letter(
        self,
        stream: str,
        entry_id: str,
        fields: dict[str, str],
        reason: str,
    ) -> None:
        await self.redis.xadd(
            dead_letter_stream(stream),
            {**fields, "source_id": entry_id, "error": reason},
        )
        await self.redis.xack(stream, self.group, entry_id)
        logger.warning("Dead-lettered entry %s from %s: %s", entry_id, stream, reason)

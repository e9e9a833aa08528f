"""
Order Service — カタログクライアント

Catalog Service に ISBN で書籍を問い合わせる。
ISBN はパスの1セグメントとしてパーセントエンコードして送る
（"?" "#" "/" を含む ISBN が別の書籍を指さないように）。
見つからない・タイムアウト・ネットワークエラーはすべて
found=False として返し、呼び出し側に例外を伝播させない。
"""

import asyncio
import logging
from dataclasses import dataclass
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

logger = logging.getLogger(__name__)


class BookResponse(BaseModel):
    """GET /books/{isbn} のレスポンス（未知のフィールドは無視）"""
    model_config = ConfigDict(extra="ignore")

    isbn: str | None = None
    title: str
    author: str
    price: float


@dataclass(frozen=True)
class BookLookup:
    found: bool
    title: str | None = None
    author: str | None = None
    price: float | None = None


NOT_FOUND = BookLookup(found=False)


class CatalogClient:
    def __init__(self, http_client: httpx.AsyncClient, timeout: float = 3.0) -> None:
        self.http_client = http_client
        self.timeout = timeout

    async def lookup(self, isbn: str) -> BookLookup:
        """
        書籍を問い合わせる。

        timeout 秒以内に応答がなければ参照失敗として扱う。
        """
        if not isbn:
            return NOT_FOUND

        try:
            resp = await asyncio.wait_for(
                self.http_client.get(f"/books/{quote(isbn, safe='')}"),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Catalog lookup for %s timed out after %.1fs", isbn, self.timeout)
            return NOT_FOUND
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("Catalog lookup for %s failed: %s", isbn, e)
            return NOT_FOUND

        if resp.status_code == 404:
            logger.info("Book %s not found in catalog", isbn)
            return NOT_FOUND
        if resp.status_code != 200:
            logger.warning("Catalog returned %s for %s", resp.status_code, isbn)
            return NOT_FOUND

        try:
            book = BookResponse.model_validate_json(resp.content)
        except ValidationError as e:
            logger.warning("Unreadable catalog response for %s: %s", isbn, e)
            return NOT_FOUND

        return BookLookup(found=True, title=book.title, author=book.author, price=book.price)

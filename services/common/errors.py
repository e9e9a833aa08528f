"""
共通 — ドメイン例外

サービス間で共有する例外。
「書籍が見つからない」は例外ではなく通常の REJECTED 結果として扱うので、
ここには定義しない。
"""


class MalformedMessage(Exception):
    """ストリームから受け取ったメッセージを解釈できない（デッドレター行き）"""


class OrderVersionConflict(Exception):
    """楽観的ロックの競合がリトライ後も解消しなかった（一時的な失敗）"""

    def __init__(self, order_id: int, expected_version: int) -> None:
        super().__init__(
            f"Version conflict on order {order_id} (expected version {expected_version})"
        )
        self.order_id = order_id
        self.expected_version = expected_version

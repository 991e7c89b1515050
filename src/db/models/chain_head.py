"""チェーンヘッドモデル — スコープ単位の追記ロック行"""

from datetime import datetime

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import TIMESTAMP, Base


class ChainHead(Base):
    """チェーンスコープごとのロック行

    チェーンデータは持たない。追記・アーカイブの最初の書き込みとして
    この行を UPDATE することで、同一スコープへの書き込みを直列化する。
    """

    __tablename__ = "audit_chain_heads"

    scope_key: Mapped[str] = mapped_column(String(200), primary_key=True)
    append_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False)

    def __repr__(self) -> str:
        return f"<ChainHead {self.scope_key} appends={self.append_count}>"

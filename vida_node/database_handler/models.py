from sqlalchemy import LargeBinary
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class KeyValueEntry(Base):
    """One durably flushed entry of the committed key-value store."""

    __tablename__ = "kv_entries"

    key: Mapped[bytes] = mapped_column(LargeBinary, primary_key=True)
    value: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)

    def __repr__(self) -> str:
        return f"KeyValueEntry(key={self.key!r}, value_len={len(self.value)})"

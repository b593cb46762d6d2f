#!/usr/bin/env python3
"""SQLAlchemy ORM models for the probe run ledger.

Defines database schema using SQLAlchemy declarative models.
"""

from typing import List, Optional

from sqlalchemy import Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class Run(Base):
    """Probing run model.

    Tracks a complete search from the initial bounds to the final answer.
    """

    __tablename__ = "runs"

    run_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    min_concurrency: Mapped[int] = mapped_column(Integer, nullable=False)
    max_concurrency: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[str] = mapped_column(String, nullable=False)
    end_time: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="running")
    result_concurrency: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    config: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON as TEXT

    # Relationships
    probes: Mapped[List["Probe"]] = relationship(
        "Probe", back_populates="run", cascade="all, delete-orphan", order_by="Probe.probe_num"
    )

    def __repr__(self) -> str:
        return (
            f"<Run(id={self.run_id}, status={self.status}, "
            f"bounds=[{self.min_concurrency}, {self.max_concurrency}), "
            f"result={self.result_concurrency})>"
        )


class Probe(Base):
    """Single probe model.

    One concurrency level exercised with the full query catalog.
    """

    __tablename__ = "probes"

    probe_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(Integer, ForeignKey("runs.run_id"), nullable=False)
    probe_num: Mapped[int] = mapped_column(Integer, nullable=False)
    concurrency: Mapped[int] = mapped_column(Integer, nullable=False)
    result: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    interval_low: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    interval_high: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    start_time: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    end_time: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    duration: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Relationships
    run: Mapped["Run"] = relationship("Run", back_populates="probes")

    def __repr__(self) -> str:
        return (
            f"<Probe(id={self.probe_id}, num={self.probe_num}, "
            f"concurrency={self.concurrency}, result={self.result})>"
        )

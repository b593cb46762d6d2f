#!/usr/bin/env python3
"""State Manager - run ledger storage using SQLAlchemy ORM.

Records probing runs and their probes for the status and report commands.
The search itself never reads this data back.
"""

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine, select
from sqlalchemy.orm import scoped_session, sessionmaker

from concprobe.persistence.models import Base, Probe, Run


logger = logging.getLogger(__name__)

# Constants
DEFAULT_DB_PATH = "probe.db"


class DatabaseError(Exception):
    """Base exception for database-related errors."""


@dataclass
class ProbeRun:
    """Probing run data.

    Attributes:
        run_id: Unique run identifier
        min_concurrency: Initial lower bound
        max_concurrency: Initial upper bound
        start_time: Run start timestamp
        end_time: Run end timestamp (None while running)
        status: Run status (running, completed, failed)
        result_concurrency: Converged maximum concurrency (None until complete)
        error_message: Fatal error for failed runs
    """

    run_id: int
    min_concurrency: int
    max_concurrency: int
    start_time: str
    end_time: Optional[str] = None
    status: str = "running"
    result_concurrency: Optional[int] = None
    error_message: Optional[str] = None


@dataclass
class ProbeRecord:
    """Probe record.

    Attributes:
        probe_id: Unique probe identifier
        run_id: Parent run ID
        probe_num: Probe number (1-indexed)
        concurrency: Probed concurrency level
        result: survived or crashed (None while running)
        error_message: Crash or workload error
        interval_low: Interval lower bound after the probe
        interval_high: Interval upper bound after the probe
        start_time: Probe start timestamp
        end_time: Probe end timestamp
        duration: Duration in seconds
    """

    probe_id: int
    run_id: int
    probe_num: int
    concurrency: int
    result: Optional[str] = None
    error_message: Optional[str] = None
    interval_low: Optional[int] = None
    interval_high: Optional[int] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    duration: Optional[float] = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class StateManager:
    """Manage the run ledger using SQLAlchemy ORM.

    Attributes:
        db_path: Path to SQLite database file
        engine: SQLAlchemy engine
        Session: Scoped session factory
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH) -> None:
        self.db_path = db_path

        db_parent = Path(db_path).parent
        if db_parent != Path():
            db_parent.mkdir(parents=True, exist_ok=True)

        # check_same_thread=False: probes are recorded from the main thread
        # while monitor threads are alive
        self.engine = create_engine(
            f"sqlite:///{db_path}",
            connect_args={"check_same_thread": False},
            echo=False,
        )

        session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        self.Session = scoped_session(session_factory)

        self._init_database()

    def _init_database(self) -> None:
        try:
            Base.metadata.create_all(self.engine)
            logger.debug(f"Database initialized at {self.db_path}")
        except Exception as exc:
            msg = f"Failed to initialize database: {exc}"
            logger.error(msg)
            raise DatabaseError(msg) from exc

    @staticmethod
    def _to_run(row: Run) -> ProbeRun:
        return ProbeRun(
            run_id=row.run_id,
            min_concurrency=row.min_concurrency,
            max_concurrency=row.max_concurrency,
            start_time=row.start_time,
            end_time=row.end_time,
            status=row.status,
            result_concurrency=row.result_concurrency,
            error_message=row.error_message,
        )

    @staticmethod
    def _to_probe(row: Probe) -> ProbeRecord:
        return ProbeRecord(
            probe_id=row.probe_id,
            run_id=row.run_id,
            probe_num=row.probe_num,
            concurrency=row.concurrency,
            result=row.result,
            error_message=row.error_message,
            interval_low=row.interval_low,
            interval_high=row.interval_high,
            start_time=row.start_time,
            end_time=row.end_time,
            duration=row.duration,
        )

    def create_run(
        self, min_concurrency: int, max_concurrency: int, config: Optional[Dict[str, Any]] = None
    ) -> int:
        """Create new probing run.

        Args:
            min_concurrency: Initial lower bound
            max_concurrency: Initial upper bound
            config: Optional configuration dict

        Returns:
            Run ID

        Raises:
            DatabaseError: If run creation fails
        """
        session = self.Session()
        try:
            run = Run(
                min_concurrency=min_concurrency,
                max_concurrency=max_concurrency,
                start_time=_now(),
                status="running",
                config=json.dumps(config) if config else None,
            )
            session.add(run)
            session.commit()
            run_id = run.run_id

            logger.info(f"Created probing run {run_id}")
            return run_id

        except Exception as exc:
            session.rollback()
            msg = f"Failed to create run: {exc}"
            logger.error(msg)
            raise DatabaseError(msg) from exc
        finally:
            session.close()

    def update_run(self, run_id: int, **kwargs: Any) -> None:
        """Update run fields.

        Args:
            run_id: Run ID to update
            **kwargs: Fields to update (end_time, status, result_concurrency, error_message)

        Raises:
            DatabaseError: If update fails
        """
        session = self.Session()
        try:
            run = session.execute(select(Run).where(Run.run_id == run_id)).scalar_one_or_none()

            if not run:
                logger.warning(f"Run {run_id} not found for update")
                return

            valid_fields = {"end_time", "status", "result_concurrency", "error_message"}
            for field, value in kwargs.items():
                if field in valid_fields:
                    setattr(run, field, value)

            session.commit()

        except Exception as exc:
            session.rollback()
            msg = f"Failed to update run: {exc}"
            logger.error(msg)
            raise DatabaseError(msg) from exc
        finally:
            session.close()

    def get_run(self, run_id: int) -> Optional[ProbeRun]:
        """Get run by ID, or None if not found."""
        session = self.Session()
        try:
            run = session.execute(select(Run).where(Run.run_id == run_id)).scalar_one_or_none()
            return self._to_run(run) if run else None
        finally:
            session.close()

    def get_latest_run(self) -> Optional[ProbeRun]:
        """Get most recent run, or None if no runs exist."""
        session = self.Session()
        try:
            stmt = select(Run).order_by(Run.run_id.desc()).limit(1)
            run = session.execute(stmt).scalar_one_or_none()
            return self._to_run(run) if run else None
        finally:
            session.close()

    def create_probe(self, run_id: int, probe_num: int, concurrency: int) -> int:
        """Create a probe record at probe start.

        Returns:
            Probe ID

        Raises:
            DatabaseError: If creation fails
        """
        session = self.Session()
        try:
            probe = Probe(
                run_id=run_id,
                probe_num=probe_num,
                concurrency=concurrency,
                start_time=_now(),
            )
            session.add(probe)
            session.commit()
            return probe.probe_id

        except Exception as exc:
            session.rollback()
            msg = f"Failed to create probe: {exc}"
            logger.error(msg)
            raise DatabaseError(msg) from exc
        finally:
            session.close()

    def update_probe(self, probe_id: int, **kwargs: Any) -> None:
        """Update probe fields.

        Args:
            probe_id: Probe ID to update
            **kwargs: Fields to update (result, error_message, interval_low,
                interval_high, end_time, duration)

        Raises:
            DatabaseError: If update fails
        """
        session = self.Session()
        try:
            probe = session.execute(
                select(Probe).where(Probe.probe_id == probe_id)
            ).scalar_one_or_none()

            if not probe:
                logger.warning(f"Probe {probe_id} not found for update")
                return

            valid_fields = {
                "result",
                "error_message",
                "interval_low",
                "interval_high",
                "end_time",
                "duration",
            }
            for field, value in kwargs.items():
                if field in valid_fields:
                    setattr(probe, field, value)

            session.commit()

        except Exception as exc:
            session.rollback()
            msg = f"Failed to update probe: {exc}"
            logger.error(msg)
            raise DatabaseError(msg) from exc
        finally:
            session.close()

    def get_probes(self, run_id: int) -> List[ProbeRecord]:
        """Get all probes of a run in probe order."""
        session = self.Session()
        try:
            stmt = select(Probe).where(Probe.run_id == run_id).order_by(Probe.probe_num)
            return [self._to_probe(row) for row in session.execute(stmt).scalars()]
        finally:
            session.close()

    def generate_summary(self, run_id: int) -> Dict[str, Any]:
        """Generate summary of a probing run (empty dict if unknown)."""
        run = self.get_run(run_id)
        if not run:
            return {}

        probes = self.get_probes(run_id)
        results = {"survived": 0, "crashed": 0, "unknown": 0}
        for probe in probes:
            key = probe.result if probe.result in results else "unknown"
            results[key] += 1

        return {
            "run_id": run.run_id,
            "min_concurrency": run.min_concurrency,
            "max_concurrency": run.max_concurrency,
            "start_time": run.start_time,
            "end_time": run.end_time,
            "status": run.status,
            "result_concurrency": run.result_concurrency,
            "error_message": run.error_message,
            "total_probes": len(probes),
            "results": results,
            "total_duration_seconds": sum(p.duration for p in probes if p.duration),
            "probes": [asdict(p) for p in probes],
        }

    def export_report(self, run_id: int, format: str = "json") -> str:
        """Export run report.

        Args:
            run_id: Run ID
            format: Output format (json or text)

        Returns:
            Report string
        """
        summary = self.generate_summary(run_id)

        if format == "json":
            return json.dumps(summary, indent=2)

        if format != "text" or not summary:
            return ""

        report = []
        report.append("=" * 70)
        report.append("CONCURRENCY PROBE REPORT")
        report.append("=" * 70)
        report.append(f"\nRun ID: {summary['run_id']}")
        report.append(
            f"Initial interval: [{summary['min_concurrency']}, {summary['max_concurrency']})"
        )
        report.append(f"Status: {summary['status']}")
        if summary["error_message"]:
            report.append(f"Error: {summary['error_message']}")

        report.append(f"\nTotal probes: {summary['total_probes']}")
        report.append(f"Total time: {summary['total_duration_seconds']:.0f}s")

        report.append("\nResults breakdown:")
        for result, count in summary["results"].items():
            report.append(f"  {result}: {count}")

        report.append("\n" + "-" * 70)
        report.append("Probe Details:")
        report.append("-" * 70)

        for probe in summary["probes"]:
            interval = ""
            if probe["interval_low"] is not None:
                interval = f"-> [{probe['interval_low']}, {probe['interval_high']})"
            report.append(
                f"\n{probe['probe_num']:3d}. concurrency {probe['concurrency']:5d} | "
                f"{probe['result'] or 'unknown':8s} | {probe['duration'] or 0:6.0f}s | {interval}"
            )
            if probe["error_message"]:
                report.append(f"     Error: {probe['error_message']}")

        if summary["result_concurrency"] is not None:
            report.append("\n" + "=" * 70)
            report.append(f"MAX SUPPORTED CONCURRENCY: {summary['result_concurrency']}")

        report.append("\n" + "=" * 70)
        return "\n".join(report)

    def close(self) -> None:
        """Close database connection and cleanup."""
        try:
            self.Session.remove()
            self.engine.dispose()
            logger.debug("Database connections closed")
        except Exception as exc:
            logger.error(f"Error closing database: {exc}")

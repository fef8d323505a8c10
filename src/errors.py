"""Error types and structured reporting for conversion runs."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

REPORT_FILENAME = ".transcripts-last-run.json"


class StorageUnavailable(Exception):
    """Raised when an expected storage entity is missing or unreadable.

    Only the affected session is skipped; the run continues.
    """


class ConversionError(BaseModel):
    """A single error captured during a conversion run."""

    source: str
    session: str = ""
    error_type: str = "unknown"
    message: str = ""
    timestamp: datetime = Field(default_factory=datetime.now)
    recoverable: bool = True


class ConversionReport(BaseModel):
    """Summary report of a conversion run."""

    started_at: datetime = Field(default_factory=datetime.now)
    finished_at: datetime | None = None
    sources_completed: list[str] = Field(default_factory=list)
    errors: list[ConversionError] = Field(default_factory=list)
    processed: dict[str, int] = Field(default_factory=dict)
    skipped: dict[str, int] = Field(default_factory=dict)
    up_to_date: dict[str, int] = Field(default_factory=dict)
    outputs_written: list[str] = Field(default_factory=list)

    def add_error(
        self,
        source: str,
        message: str,
        *,
        session: str = "",
        error_type: str = "unknown",
        recoverable: bool = True,
    ) -> None:
        """Record an error during conversion."""
        self.errors.append(
            ConversionError(
                source=source,
                session=session,
                error_type=error_type,
                message=message,
                recoverable=recoverable,
            )
        )

    def count_processed(self, source: str, output: Path) -> None:
        self.processed[source] = self.processed.get(source, 0) + 1
        self.outputs_written.append(str(output))

    def count_skipped(self, source: str) -> None:
        self.skipped[source] = self.skipped.get(source, 0) + 1

    def count_up_to_date(self, source: str) -> None:
        self.up_to_date[source] = self.up_to_date.get(source, 0) + 1

    def mark_source_complete(self, source: str) -> None:
        """Record that a source finished converting."""
        if source not in self.sources_completed:
            self.sources_completed.append(source)

    def finish(self) -> None:
        """Mark the report as finished."""
        self.finished_at = datetime.now()

    @property
    def success(self) -> bool:
        """True if no unrecoverable errors occurred."""
        return not any(not e.recoverable for e in self.errors)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def source_line(self, source: str) -> str:
        """One-line tally for a source, e.g. ``Done: 3 processed, 1 skipped, 0 up-to-date``."""
        return (
            f"Done: {self.processed.get(source, 0)} processed, "
            f"{self.skipped.get(source, 0)} skipped, "
            f"{self.up_to_date.get(source, 0)} up-to-date"
        )

    def summary_text(self) -> str:
        """Human-readable summary of the conversion run."""
        duration = ""
        if self.finished_at and self.started_at:
            secs = (self.finished_at - self.started_at).total_seconds()
            duration = f" in {secs:.0f}s" if secs < 60 else f" in {secs / 60:.1f}m"

        status = "completed" if self.success else "failed"
        lines = [f"Conversion {status}{duration}"]

        if self.sources_completed:
            lines.append(f"Sources: {', '.join(self.sources_completed)}")

        if self.processed:
            parts = [f"{k}: {v}" for k, v in self.processed.items()]
            lines.append(f"Processed: {', '.join(parts)}")

        if self.outputs_written:
            lines.append(f"Outputs: {len(self.outputs_written)} files")

        if self.errors:
            lines.append(f"Errors: {len(self.errors)}")
            for err in self.errors[:5]:
                prefix = "[recoverable]" if err.recoverable else "[FATAL]"
                target = f" {err.session}" if err.session else ""
                lines.append(f"  {prefix} {err.source}{target}: {err.message}")
            if len(self.errors) > 5:
                lines.append(f"  ... and {len(self.errors) - 5} more")

        return "\n".join(lines)


def save_report(report: ConversionReport, output_dir: Path) -> Path:
    """Save the conversion report to disk."""
    report_path = output_dir / REPORT_FILENAME
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(report.model_dump_json(indent=2), encoding="utf-8")
    return report_path


def load_report(output_dir: Path) -> ConversionReport | None:
    """Load the last conversion report from disk."""
    report_path = output_dir / REPORT_FILENAME
    if not report_path.exists():
        return None
    try:
        data = json.loads(report_path.read_text(encoding="utf-8"))
        return ConversionReport.model_validate(data)
    except (json.JSONDecodeError, ValueError):
        logger.warning("Corrupt report at %s", report_path)
        return None

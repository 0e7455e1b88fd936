"""Run statistics for a crawl."""

import time
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class CrawlMonitor:
    """Counters and timings collected while crawling."""

    def __init__(self):
        self.started_at = datetime.now(timezone.utc)
        self._start = time.monotonic()
        self.completed_at: Optional[datetime] = None
        self.pages_attempted = 0
        self.pages_succeeded = 0
        self.pages_failed = 0
        self.pages_skipped = 0
        self.fragments_extracted = 0
        self.extraction_errors = 0
        self.page_durations: List[float] = []
        self.error_counts: Counter = Counter()
        self.failed_urls: List[str] = []
        self.warnings: List[str] = []

    def record_success(self, url: str, fragments: int, duration: float) -> None:
        self.pages_succeeded += 1
        self.fragments_extracted += fragments
        self.page_durations.append(duration)

    def record_failure(self, url: str, error: Exception) -> None:
        self.pages_failed += 1
        self.failed_urls.append(url)
        self.error_counts[type(error).__name__] += 1

    def record_skip(self, url: str, reason: str) -> None:
        self.pages_skipped += 1
        self.error_counts[f"skipped:{reason}"] += 1

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def finish(self) -> None:
        self.completed_at = datetime.now(timezone.utc)

    def get_report(self) -> Dict[str, Any]:
        elapsed = time.monotonic() - self._start
        durations = self.page_durations
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": round(elapsed, 2),
            "pages_attempted": self.pages_attempted,
            "pages_succeeded": self.pages_succeeded,
            "pages_failed": self.pages_failed,
            "pages_skipped": self.pages_skipped,
            "fragments_extracted": self.fragments_extracted,
            "extraction_errors": self.extraction_errors,
            "avg_page_seconds": round(sum(durations) / len(durations), 2) if durations else 0.0,
            "max_page_seconds": round(max(durations), 2) if durations else 0.0,
            "pages_per_second": round(self.pages_attempted / elapsed, 2) if elapsed > 0 else 0.0,
            "error_counts": dict(self.error_counts),
            "failed_urls": list(self.failed_urls),
            "warnings": list(self.warnings),
        }

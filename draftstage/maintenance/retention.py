"""Age-based eviction for drafts and staged files."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, TYPE_CHECKING
import logging

from ..models import utc_now

if TYPE_CHECKING:
    from ..storage.record_store import RecordStore
    from ..storage.blob_store import BlobStore

logger = logging.getLogger(__name__)


DEFAULT_RETENTION = timedelta(days=7)


@dataclass
class SweepReport:
    """What a draft sweep removed and what it kept."""
    removed: List[str] = field(default_factory=list)
    kept: List[str] = field(default_factory=list)


class RetentionSweeper:
    """Deletes local records older than the retention window.
    
    The sweeper holds no state besides its policy. Sweeps are maintenance,
    not transactions: a draft saved while a sweep runs may or may not be
    seen by it.
    
    Usage:
        sweeper = RetentionSweeper(timedelta(days=7))
        report = await sweeper.sweep_records(record_store)
        removed = await sweeper.sweep_files(blob_store)
    """
    
    def __init__(
        self,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Callable[[], datetime] = utc_now,
    ):
        if retention <= timedelta(0):
            raise ValueError(f"Retention window must be positive, got {retention}")
        self.retention = retention
        self.clock = clock
    
    def cutoff(self) -> datetime:
        """Oldest timestamp that is still kept."""
        return self.clock() - self.retention
    
    async def sweep_records(self, record_store: "RecordStore") -> SweepReport:
        """Remove expired, missing and corrupt drafts, then rebuild the index.
        
        The index is replaced with exactly the surviving job ids rather than
        patched, so entries left behind by earlier failures are dropped too.
        """
        cutoff = self.cutoff()
        report = SweepReport()
        
        for job_id in await record_store.list_known_keys():
            record = await record_store.get_record(job_id)
            if record is None or record.is_older_than(cutoff):
                await record_store.remove_record(job_id)
                report.removed.append(job_id)
            else:
                report.kept.append(job_id)
        
        await record_store.replace_index(report.kept)
        
        logger.info(
            f"Draft sweep: removed {len(report.removed)}, kept {len(report.kept)} "
            f"(cutoff {cutoff.isoformat()})"
        )
        return report
    
    async def sweep_files(self, blob_store: "BlobStore") -> int:
        """Remove staged files older than the retention window."""
        return await blob_store.sweep_older_than(self.retention)

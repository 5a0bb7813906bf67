from __future__ import annotations

import logging
import shutil
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel

from posetrigger.common.errors import PersistError
from posetrigger.common.schemas import Artifact, RecordingSession
from posetrigger.record.base import Storage


logger = logging.getLogger(__name__)


class ClipRecord(BaseModel):
    """Sidecar metadata stored next to each saved clip."""

    session_id: str
    file: str
    saved_at: str
    frames: int
    duration_s: float
    trigger_ts: Optional[float] = None


class LibraryStore(Storage):
    """Moves finished clips into a library folder on a single background worker."""

    def __init__(self, root: Union[str, Path], write_sidecar: bool = True):
        self.root = Path(root)
        self.write_sidecar = write_sidecar
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="clip-persist")

    def persist(self, artifact: Artifact, session: RecordingSession) -> "Future[Path]":
        return self._executor.submit(self._store, artifact, session)

    def _store(self, artifact: Artifact, session: RecordingSession) -> Path:
        stamp = datetime.now()
        name = f"clip_{stamp.strftime('%Y%m%d_%H%M%S')}_{session.session_id[:8]}{artifact.path.suffix}"
        target = self.root / name
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            shutil.move(str(artifact.path), str(target))
            if self.write_sidecar:
                record = ClipRecord(
                    session_id=session.session_id,
                    file=name,
                    saved_at=stamp.isoformat(timespec="seconds"),
                    frames=artifact.frames,
                    duration_s=round(artifact.duration_s, 3),
                    trigger_ts=session.trigger_ts,
                )
                target.with_suffix(".json").write_text(record.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            raise PersistError(f"{artifact.path.name}: {e}") from e
        logger.info("Saved clip to %s", target)
        return target

    def close(self) -> None:
        self._executor.shutdown(wait=True)

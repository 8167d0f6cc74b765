"""Audio transcription pipeline package.

Modules are organised by the order in which a submitted job executes:

1. `ingestion` - validate the multipart upload and spool it to a temp file.
2. `upload` - push the audio to object storage under the user's namespace.
3. `transcription` - open the streamed generation (inline audio or signed URL).
4. `splitter` - fork the fragment stream into the live feed and the accumulator.
5. `review` - structured correction of the accumulated text plus a changelog.
6. `summary` - structured summary of the corrected (or raw) text.
7. `persistence` - write one history record for the finished job.

`orchestrator` ties the stages together; `cancellation` carries the per-job
token every stage checks. The orchestrator and stage modules are not
re-exported here; import them by module path.
"""

from .cancellation import CancellationToken, JobCancelled
from .splitter import StreamBranch, StreamSplitter, fork
from .types import (
    AudioSource,
    GlobalSettings,
    ReferenceFile,
    ReviewSettings,
    SourceFile,
    TranscriptionOptions,
)

__all__ = [
    "AudioSource",
    "CancellationToken",
    "GlobalSettings",
    "JobCancelled",
    "ReferenceFile",
    "ReviewSettings",
    "SourceFile",
    "StreamBranch",
    "StreamSplitter",
    "TranscriptionOptions",
    "fork",
]

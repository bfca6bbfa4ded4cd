import logging
import os
import time
from typing import Callable, Dict, Optional

from progress_wizard.services.batch_submission import BatchSubmissionCoordinator
from progress_wizard.services.manual_wizard import SelectionWizardController
from progress_wizard.services.transcript_review import TranscriptReview

logger = logging.getLogger(__name__)

DEFAULT_IDLE_SECONDS = 1800.0


class ManualWizardSession:
    def __init__(self, client, wizard: SelectionWizardController):
        self.client = client
        self.wizard = wizard
        self.coordinator = BatchSubmissionCoordinator(client)
        self.last_used = 0.0

class TranscriptReviewSession:
    def __init__(self, client, review: TranscriptReview):
        self.client = client
        self.review = review
        self.coordinator = BatchSubmissionCoordinator(client)
        self.last_used = 0.0


async def _close(session):
    if session is None:
        return
    close = getattr(session.client, "aclose", None)
    if close is not None:
        await close()


class WizardStore:
    """One manual wizard and one transcript review per signed-in caller, in process.

    Owners are token digests, so a rotated token leaves its wizards behind;
    anything untouched for `idle_seconds` is closed on the next open.
    """

    def __init__(self, idle_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        if idle_seconds is None:
            idle_seconds = float(os.getenv("WIZARD_IDLE_SECONDS") or DEFAULT_IDLE_SECONDS)
        self.idle_seconds = idle_seconds
        self._clock = clock
        self._manual: Dict[str, ManualWizardSession] = {}
        self._transcript: Dict[str, TranscriptReviewSession] = {}

    def __len__(self):
        return len(self._manual) + len(self._transcript)

    def _touch(self, session):
        if session is not None:
            session.last_used = self._clock()
        return session

    def manual(self, owner: str) -> Optional[ManualWizardSession]:
        return self._touch(self._manual.get(owner))

    def transcript(self, owner: str) -> Optional[TranscriptReviewSession]:
        return self._touch(self._transcript.get(owner))

    async def evict_idle(self) -> int:
        cutoff = self._clock() - self.idle_seconds
        evicted = 0
        for sessions in (self._manual, self._transcript):
            for owner in [o for o, s in sessions.items() if s.last_used < cutoff]:
                await _close(sessions.pop(owner))
                evicted += 1
        if evicted:
            logger.info(f"Evicted {evicted} idle wizard(s)")
        return evicted

    async def open_manual(self, owner: str, session: ManualWizardSession) -> ManualWizardSession:
        await self.evict_idle()
        await _close(self._manual.get(owner))
        self._manual[owner] = self._touch(session)
        return session

    async def open_transcript(self, owner: str, session: TranscriptReviewSession) -> TranscriptReviewSession:
        await self.evict_idle()
        await _close(self._transcript.get(owner))
        self._transcript[owner] = self._touch(session)
        return session

    async def close_manual(self, owner: str) -> bool:
        session = self._manual.pop(owner, None)
        await _close(session)
        return session is not None

    async def close_transcript(self, owner: str) -> bool:
        session = self._transcript.pop(owner, None)
        await _close(session)
        return session is not None


wizard_store = WizardStore()


def get_wizard_store() -> WizardStore:
    return wizard_store

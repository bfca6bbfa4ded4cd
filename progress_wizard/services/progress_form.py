"""Per-objective progress drafts.

A draft is keyed by whatever the caller logs against: the objective id on
the manual path, the parsed session id on the transcript path. Binary
objectives take a yes/no answer; trial objectives take two whole numbers
typed as free text and only coerced on commit so a half-typed value is
never clobbered.
"""

import logging
from pydantic import BaseModel
from typing import Dict, Iterable, Literal, Optional, Tuple, Union

from progress_wizard.schemas.objective import BINARY, TRIAL
from progress_wizard.schemas.session import ObjectiveProgress
from progress_wizard.schemas.transcript import ProgressGuess
from progress_wizard.services.errors import DraftInputError

logger = logging.getLogger(__name__)

Answer = Literal["yes", "no"]


# ---------- Drafts ----------
class BinaryDraft(BaseModel):
    kind: Literal["binary"] = BINARY
    answer: Optional[Answer] = None
    memo: str = ""

class TrialDraft(BaseModel):
    kind: Literal["trial"] = TRIAL
    # raw text as typed, before coercion
    completed_input: str = ""
    total_input: str = ""
    trials_completed: int = 0
    trials_total: int = 1
    touched: bool = False
    dirty: bool = False
    memo: str = ""


def _parse_count(raw: Optional[str]) -> Optional[int]:
    """Empty means 0; anything that is not a non-negative whole number is None."""
    text = (raw or "").strip()
    if not text:
        return 0
    try:
        value = int(text)
    except ValueError:
        return None
    if value < 0:
        return None
    return value


class ProgressFormEngine:
    def __init__(self):
        self._drafts: Dict[str, Union[BinaryDraft, TrialDraft]] = {}

    # ---------- Draft lifecycle ----------
    def ensure_draft(
        self,
        key: str,
        objective_type: str,
        guess: Optional[ProgressGuess] = None,
        memo: Optional[str] = None,
    ) -> Union[BinaryDraft, TrialDraft]:
        """Return the draft for key, creating or re-shaping it for objective_type."""
        kind = BINARY if objective_type == BINARY else TRIAL
        existing = self._drafts.get(key)
        if existing is not None and existing.kind == kind:
            return existing

        if existing is not None:
            memo = existing.memo
            logger.info(f"Re-shaping draft {key} from {existing.kind} to {kind}")

        if kind == BINARY:
            draft = BinaryDraft(memo=memo or "")
            if guess is not None:
                draft.answer = "yes" if guess.trials_completed == 1 else "no"
        else:
            draft = TrialDraft(memo=memo or "")
            if guess is not None:
                draft.completed_input = str(max(0, guess.trials_completed))
                draft.total_input = str(max(0, guess.trials_total))
                draft.touched = True
                self._coerce(key, draft)

        self._drafts[key] = draft
        return draft

    def get(self, key: str) -> Optional[Union[BinaryDraft, TrialDraft]]:
        return self._drafts.get(key)

    def keys(self):
        return list(self._drafts.keys())

    def discard(self, key: str):
        self._drafts.pop(key, None)

    def retain(self, keys: Iterable[str]):
        """Drop every draft whose key is no longer selected."""
        keep = set(keys)
        for key in [k for k in self._drafts if k not in keep]:
            del self._drafts[key]

    def reset(self):
        self._drafts = {}

    # ---------- Input ----------
    def _require(self, key: str):
        draft = self._drafts.get(key)
        if draft is None:
            raise ValueError(f"No progress draft for '{key}'")
        return draft

    def set_answer(self, key: str, answer: Optional[Answer]) -> BinaryDraft:
        draft = self._require(key)
        if not isinstance(draft, BinaryDraft):
            raise ValueError(f"'{key}' is a trial objective and takes trial counts, not yes/no")
        if answer not in ("yes", "no", None):
            raise DraftInputError(key, "answer", answer, f"'{answer}' is not one of yes/no")
        draft.answer = answer
        return draft

    def set_trial_input(self, key: str, completed: Optional[str] = None, total: Optional[str] = None) -> TrialDraft:
        """Buffer raw text; nothing is coerced until commit()."""
        draft = self._require(key)
        if not isinstance(draft, TrialDraft):
            raise ValueError(f"'{key}' is a yes/no objective and takes an answer, not trial counts")
        if completed is not None:
            draft.completed_input = str(completed)
            draft.touched = True
            draft.dirty = True
        if total is not None:
            draft.total_input = str(total)
            draft.touched = True
            draft.dirty = True
        return draft

    def commit(self, key: str) -> Union[BinaryDraft, TrialDraft]:
        draft = self._require(key)
        if isinstance(draft, TrialDraft):
            self._coerce(key, draft)
        return draft

    def _coerce(self, key: str, draft: TrialDraft):
        completed = _parse_count(draft.completed_input)
        if completed is None:
            raise DraftInputError(key, "trials_completed", draft.completed_input)
        total = _parse_count(draft.total_input)
        if total is None:
            raise DraftInputError(key, "trials_total", draft.total_input)

        draft.trials_completed = completed
        draft.trials_total = max(1, total)
        draft.completed_input = str(draft.trials_completed)
        draft.total_input = str(draft.trials_total)
        draft.dirty = False

    def set_memo(self, key: str, memo: Optional[str]):
        self._require(key).memo = memo or ""

    # ---------- Completeness ----------
    def is_complete(self, key: str) -> bool:
        draft = self._drafts.get(key)
        if draft is None:
            return False
        if isinstance(draft, BinaryDraft):
            return draft.answer is not None
        if isinstance(draft, TrialDraft):
            if not draft.touched:
                return False
            return (
                _parse_count(draft.completed_input) is not None
                and _parse_count(draft.total_input) is not None
            )
        raise TypeError(f"Unknown draft type {type(draft).__name__}")

    def completion(self, keys: Iterable[str]) -> Tuple[int, int]:
        """(filled, total) over keys, for "3 of 7 objectives filled" counters."""
        keys = list(keys)
        return sum(1 for k in keys if self.is_complete(k)), len(keys)

    # ---------- Output ----------
    def finalize(self, key: str) -> ObjectiveProgress:
        draft = self._require(key)
        if isinstance(draft, BinaryDraft):
            if draft.answer is None:
                raise DraftInputError(key, "answer", None, "No yes/no answer selected")
            return ObjectiveProgress(
                trials_completed=1 if draft.answer == "yes" else 0,
                trials_total=1,
            )
        if isinstance(draft, TrialDraft):
            if draft.dirty:
                self._coerce(key, draft)
            return ObjectiveProgress(
                trials_completed=draft.trials_completed,
                trials_total=max(1, draft.trials_total),
            )
        raise TypeError(f"Unknown draft type {type(draft).__name__}")

    def memo(self, key: str) -> str:
        return self._require(key).memo

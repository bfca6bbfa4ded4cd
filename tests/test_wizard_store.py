import pytest

from progress_wizard.services.manual_wizard import SelectionWizardController
from progress_wizard.services.transcript_review import TranscriptReview
from progress_wizard.services.wizard_store import ManualWizardSession, TranscriptReviewSession, WizardStore


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def store(clock):
    return WizardStore(idle_seconds=60, clock=clock)


def manual_session(client):
    return ManualWizardSession(client, SelectionWizardController((), client))


def test_idle_wizards_are_closed_on_next_open(store, clock, fake_client_class, run):
    stale = [fake_client_class() for _ in range(50)]
    for i, client in enumerate(stale):
        run(store.open_manual(f"owner-{i}", manual_session(client)))
    assert len(store) == 50

    clock.now = 120
    fresh = fake_client_class()
    run(store.open_manual("rotated", manual_session(fresh)))

    assert len(store) == 1
    assert all(c.closed for c in stale)
    assert not fresh.closed
    assert store.manual("owner-0") is None

def test_recent_use_keeps_wizard_alive(store, clock, fake_client_class, run):
    kept = fake_client_class()
    run(store.open_manual("a", manual_session(kept)))
    run(store.open_transcript("b", TranscriptReviewSession(fake_client_class(), TranscriptReview())))

    clock.now = 50
    assert store.manual("a") is not None
    clock.now = 100

    assert run(store.evict_idle()) == 1
    assert store.manual("a") is not None
    assert store.transcript("b") is None
    assert not kept.closed

def test_reopening_closes_previous_client(store, fake_client_class, run):
    first, second = fake_client_class(), fake_client_class()
    run(store.open_manual("a", manual_session(first)))
    run(store.open_manual("a", manual_session(second)))
    assert first.closed
    assert not second.closed

def test_close_reports_whether_anything_was_open(store, fake_client_class, run):
    client = fake_client_class()
    run(store.open_manual("a", manual_session(client)))
    assert run(store.close_manual("a"))
    assert client.closed
    assert not run(store.close_manual("a"))
    assert not run(store.close_transcript("a"))

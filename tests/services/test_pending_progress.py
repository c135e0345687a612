from __future__ import annotations

import logging

from prospector.services.discovery.pending import PendingSearchStore
from prospector.services.discovery.progress import (
    EMAIL_FOUND,
    PROVIDER_STARTED,
    SEARCH_STARTED,
    ProgressChannel,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_only_one_search_per_contact_at_a_time():
    store: PendingSearchStore[str] = PendingSearchStore(ttl_seconds=60)

    assert store.try_begin("contact-1")
    assert not store.try_begin("contact-1")
    assert store.try_begin("contact-2")
    assert store.is_pending("contact-1")

    store.finish("contact-1")

    assert not store.is_pending("contact-1")
    assert store.try_begin("contact-1")


def test_cached_outcomes_expire_after_ttl():
    clock = FakeClock()
    store: PendingSearchStore[str] = PendingSearchStore(ttl_seconds=60, clock=clock)

    store.remember("contact-1:key", "outcome")
    clock.now += 59
    assert store.cached("contact-1:key") == "outcome"

    clock.now += 1
    assert store.cached("contact-1:key") is None


def test_missing_key_is_never_cached():
    store: PendingSearchStore[str] = PendingSearchStore(ttl_seconds=60)

    store.remember(None, "outcome")

    assert store.cached(None) is None
    assert store.cached("") is None


def test_reset_clears_everything():
    store: PendingSearchStore[str] = PendingSearchStore(ttl_seconds=60)
    store.try_begin("contact-1")
    store.remember("contact-1:key", "outcome")

    store.reset()

    assert not store.is_pending("contact-1")
    assert store.cached("contact-1:key") is None


def test_progress_history_and_subscribers():
    channel = ProgressChannel()
    received = []
    unsubscribe = channel.subscribe(received.append)

    channel.publish("contact-1", SEARCH_STARTED, providers=["apollo_search"])
    channel.publish("contact-1", PROVIDER_STARTED, provider="apollo")
    unsubscribe()
    channel.publish("contact-1", EMAIL_FOUND, provider="apollo", confidence=90)

    assert [event.event for event in received] == [SEARCH_STARTED, PROVIDER_STARTED]
    history = channel.history("contact-1")
    assert [event.event for event in history] == [SEARCH_STARTED, PROVIDER_STARTED, EMAIL_FOUND]
    assert history[-1].detail == {"confidence": 90}
    assert channel.history("contact-2") == []


def test_history_is_bounded():
    channel = ProgressChannel(history_limit=3)

    for index in range(5):
        channel.publish("contact-1", PROVIDER_STARTED, provider=f"provider-{index}")

    assert [event.provider for event in channel.history("contact-1")] == [
        "provider-2",
        "provider-3",
        "provider-4",
    ]


def test_failing_subscriber_does_not_break_publishing(caplog):
    channel = ProgressChannel()
    received = []

    def explode(event):
        raise RuntimeError("subscriber bug")

    channel.subscribe(explode)
    channel.subscribe(received.append)

    with caplog.at_level(logging.ERROR):
        channel.publish("contact-1", SEARCH_STARTED)

    assert len(received) == 1
    assert "discovery.progress.subscriber_failed" in caplog.text


def test_event_to_dict_serializes_timestamp():
    event = ProgressChannel().publish("contact-1", EMAIL_FOUND, provider="hunter", confidence=72)

    payload = event.to_dict()

    assert payload["provider"] == "hunter"
    assert payload["detail"] == {"confidence": 72}
    assert isinstance(payload["timestamp"], str)


def test_least_recently_active_contact_history_is_evicted():
    channel = ProgressChannel(max_contacts=2)

    channel.publish("contact-1", SEARCH_STARTED)
    channel.publish("contact-2", SEARCH_STARTED)
    channel.publish("contact-1", PROVIDER_STARTED, provider="apollo")
    channel.publish("contact-3", SEARCH_STARTED)

    assert channel.history("contact-2") == []
    assert [event.event for event in channel.history("contact-1")] == [
        SEARCH_STARTED,
        PROVIDER_STARTED,
    ]
    assert len(channel.history("contact-3")) == 1

"""
Tests for push coordination.

Covers the reference scenarios, commit atomicity, deduplication,
reconciliation ordering and failure behaviour of a push call.
"""
from __future__ import annotations

import threading
from urllib.parse import parse_qs, urlsplit

import pytest

from modelops_registry.coordinator import PushCoordinator
from modelops_registry.errors import RequestCancelled, StoreError, TransientError, ValidationError
from modelops_registry.models import CompletePart
from modelops_registry.names import parse_reference
from modelops_registry.settings import MIB, Settings
from modelops_registry.storage.keys import blob_key, manifest_key

from tests.helpers.manifests import (
    NAME,
    blob_layer,
    fake_digest,
    layer,
    manifest_bytes,
    push_body,
    push_request,
)
from tests.storage.fakes import FailingStore, StallingStore

MANIFEST_KEY = manifest_key(parse_reference(NAME))


def query(url: str) -> dict:
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


class TestScenarios:
    """Reference push scenarios with the default upload policy."""

    def test_small_blob_single_requirement(self, coordinator, store):
        """One absent 1000 byte layer."""
        response = coordinator.push(push_request(manifest_bytes(layer(1000, "a"))))

        assert len(response.requirements) == 1
        req = response.requirements[0]
        assert (req.digest, req.offset, req.size) == (fake_digest("a"), 0, 1000)
        assert "uploadId" not in query(req.url)
        assert not store.exists(MANIFEST_KEY)

    def test_multipart_blob_with_one_part(self, coordinator, store):
        """A 20 MiB layer is a one-part multipart session."""
        response = coordinator.push(push_request(manifest_bytes(layer(20 * MIB, "b"))))

        assert len(response.requirements) == 1
        req = response.requirements[0]
        assert (req.offset, req.size) == (0, 20 * MIB)
        assert query(req.url)["partNumber"] == "1"
        assert store.calls["open_multipart"] == 1
        assert not store.exists(MANIFEST_KEY)

    def test_present_blob_commits(self, coordinator, store):
        """Every layer present, so the manifest is committed."""
        store.put_direct(blob_key(fake_digest("c")), b"c")
        manifest = manifest_bytes(layer(1, "c"))

        response = coordinator.push(push_request(manifest))

        assert response.requirements == []
        assert store.get(MANIFEST_KEY) == manifest

    def test_single_part_completion_record_ignored(self, coordinator, store):
        """A record without uploadId triggers no completion."""
        store.put_direct(blob_key(fake_digest("d")), b"d")
        url = store.presign_put(blob_key(fake_digest("d")), coordinator.policy.ttl)

        response = coordinator.push(push_request(
            manifest_bytes(layer(1, "d")),
            complete_parts=[CompletePart(url=url, etag='"e"')],
        ))

        assert response.requirements == []
        assert store.calls["complete_multipart"] == 0

    def test_unknown_session_rejected(self, coordinator, store):
        """Unknown uploadId fails the call and nothing is committed."""
        store.put_direct(blob_key(fake_digest("e")), b"e")
        url = store.presign_multipart_part(blob_key(fake_digest("e")), "stale-id", 1, coordinator.policy.ttl)

        with pytest.raises(ValidationError) as exc_info:
            coordinator.push(push_request(
                manifest_bytes(layer(1, "e")),
                complete_parts=[CompletePart(url=url, etag='"e"')],
            ))

        assert exc_info.value.field == "uploadId"
        assert exc_info.value.value == "stale-id"
        assert not store.exists(MANIFEST_KEY)


class TestPlanning:
    """Test requirement computation."""

    def test_requirements_follow_layer_order(self, coordinator):
        manifest = manifest_bytes(layer(30, "x"), layer(10, "y"), layer(20, "z"))
        response = coordinator.push(push_request(manifest))
        assert [r.digest for r in response.requirements] == [fake_digest(s) for s in "xyz"]

    def test_duplicate_digest_planned_once(self, coordinator, store):
        manifest = manifest_bytes(layer(10, "dup"), layer(10, "dup"))
        response = coordinator.push(push_request(manifest))

        assert len(response.requirements) == 1
        assert store.calls["presign_put"] == 1

    def test_repeated_push_is_idempotent(self, coordinator):
        manifest = manifest_bytes(layer(10, "a"), layer(20 * MIB, "b"))

        first = coordinator.push(push_request(manifest))
        second = coordinator.push(push_request(manifest))

        shape = lambda response: [(r.digest, r.offset, r.size) for r in response.requirements]
        assert shape(first) == shape(second)

    def test_zero_size_layers_need_no_upload(self, coordinator, store):
        manifest = manifest_bytes(layer(0, "empty"))
        assert coordinator.push(push_request(manifest)).requirements == []
        assert store.calls["exists"] == 0
        assert store.get(MANIFEST_KEY) == manifest

    def test_only_missing_layers_are_requested(self, coordinator, store):
        store.put_direct(blob_key(fake_digest("have")), b"h")
        manifest = manifest_bytes(layer(1, "have"), layer(2, "need"))

        response = coordinator.push(push_request(manifest))

        assert [r.digest for r in response.requirements] == [fake_digest("need")]

    def test_manifest_without_layers_commits(self, coordinator, store):
        manifest = b'{"config": {}}'
        assert coordinator.push(push_request(manifest)).requirements == []
        assert store.get(MANIFEST_KEY) == manifest


class TestCommit:
    """Test manifest commit behaviour."""

    def test_no_commit_while_requirements_outstanding(self, coordinator, store):
        store.put_direct(blob_key(fake_digest("a")), b"a")
        coordinator.push(push_request(manifest_bytes(layer(1, "a"), layer(5, "b"))))

        assert store.calls["put_direct"] == 1
        assert not store.exists(MANIFEST_KEY)

    def test_raw_manifest_bytes_are_stored(self, coordinator, store):
        manifest = b'{ "layers" : [ ],\n  "annotations": {"b": "2", "a": "1"} }'
        coordinator.push_body(push_body(manifest))
        assert store.get(MANIFEST_KEY) == manifest

    def test_build_is_part_of_manifest_key(self, coordinator, store):
        coordinator.push(push_request(b"{}", name=NAME + "+Q4_0"))
        assert store.exists(MANIFEST_KEY + "/Q4_0")


class TestValidation:
    """Test request validation before any store access."""

    @pytest.mark.parametrize("name", ["mistral", "library/mistral:7b", "example.com/library/mistral"])
    def test_incomplete_name(self, coordinator, store, name):
        with pytest.raises(ValidationError) as exc_info:
            coordinator.push(push_request(manifest_bytes(layer(1, "a")), name=name))

        assert exc_info.value.field == "name"
        assert exc_info.value.value == name
        assert sum(store.calls.values()) == 0

    def test_malformed_manifest(self, coordinator, store):
        with pytest.raises(ValidationError) as exc_info:
            coordinator.push(push_request(manifest_bytes({"digest": "nope", "size": 1})))

        assert exc_info.value.field.startswith("manifest")
        assert sum(store.calls.values()) == 0

    def test_malformed_body(self, coordinator):
        with pytest.raises(ValidationError):
            coordinator.push_body(b"{")


class TestMultiRoundPush:
    """Test reconciliation of uploaded parts across rounds."""

    def test_multipart_push_completes_and_commits(self, small_coordinator, store):
        data = b"0123456789abcdefghij"
        manifest = manifest_bytes(blob_layer(data))

        first = small_coordinator.push(push_request(manifest))
        assert [(r.offset, r.size) for r in first.requirements] == [(0, 8), (8, 8), (16, 4)]

        records = [
            CompletePart(url=r.url, etag=store.upload(r.url, data[r.offset:r.offset + r.size]))
            for r in reversed(first.requirements)
        ]
        second = small_coordinator.push(push_request(manifest, complete_parts=records))

        assert second.requirements == []
        assert store.get(blob_key(blob_layer(data)["digest"])) == data
        assert store.get(MANIFEST_KEY) == manifest
        assert store.open_uploads() == {}

    def test_reconciliation_precedes_planning(self, small_coordinator, store):
        """A blob completed in this call is not requested again."""
        data = b"abcdefgh"
        manifest = manifest_bytes(blob_layer(data))
        first = small_coordinator.push(push_request(manifest))
        req = first.requirements[0]
        etag = store.upload(req.url, data)

        second = small_coordinator.push(push_request(manifest, complete_parts=[CompletePart(url=req.url, etag=etag)]))

        assert second.requirements == []
        assert store.calls["open_multipart"] == 1

    def test_partial_upload_is_requested_again(self, small_coordinator, store):
        """Without completion records a new session is opened."""
        data = b"abcdefgh"
        manifest = manifest_bytes(blob_layer(data))
        first = small_coordinator.push(push_request(manifest))
        store.upload(first.requirements[0].url, data)

        second = small_coordinator.push(push_request(manifest))

        assert len(second.requirements) == 1
        assert query(second.requirements[0].url)["uploadId"] != query(first.requirements[0].url)["uploadId"]


class TestFailures:
    """Test that failures abort the call without side effects."""

    def test_presign_failure_yields_no_partial_list(self, settings):
        failing_key = blob_key(fake_digest("bad"))
        store = FailingStore("presign_put", when=lambda key: key == failing_key)
        coordinator = PushCoordinator(store, settings)
        manifest = manifest_bytes(layer(1, "ok-1"), layer(1, "bad"), layer(1, "ok-2"))

        with pytest.raises(StoreError):
            coordinator.push(push_request(manifest))

        assert not store.exists(MANIFEST_KEY)

    def test_exists_failure(self, settings):
        store = FailingStore("exists")
        coordinator = PushCoordinator(store, settings)

        with pytest.raises(StoreError):
            coordinator.push(push_request(manifest_bytes(layer(1, "a"))))
        assert store.calls["put_direct"] == 0

    def test_commit_failure(self, settings):
        store = FailingStore("put_direct")
        coordinator = PushCoordinator(store, settings)

        with pytest.raises(StoreError):
            coordinator.push(push_request(b"{}"))

    def test_deadline_exceeded(self):
        settings = Settings(bucket="registry", store="memory", push_timeout_s=0.05)
        store = StallingStore()
        coordinator = PushCoordinator(store, settings)
        try:
            with pytest.raises(TransientError, match="deadline"):
                coordinator.push(push_request(manifest_bytes(layer(1, "a"))))
        finally:
            store.release()
        assert not store.exists(MANIFEST_KEY)

    def test_admission_refused(self, settings, store):
        class Refuse:
            def admit(self, nbytes, deadline=None):
                raise TransientError("no capacity")

        coordinator = PushCoordinator(store, settings, admission=Refuse())
        with pytest.raises(TransientError, match="no capacity"):
            coordinator.push(push_request(manifest_bytes(layer(1, "a"))))
        assert store.calls["presign_put"] == 0

    def test_cancelled_request_does_not_commit(self, coordinator, store):
        store.put_direct(blob_key(fake_digest("a")), b"a")
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(RequestCancelled):
            coordinator.push(push_request(manifest_bytes(layer(1, "a"))), cancel=cancel)

        assert not store.exists(MANIFEST_KEY)

    def test_cancel_abandons_stalled_store_calls(self, settings):
        store = StallingStore()
        coordinator = PushCoordinator(store, settings)
        cancel = threading.Event()
        timer = threading.Timer(0.05, cancel.set)
        timer.start()
        try:
            with pytest.raises(RequestCancelled):
                coordinator.push(push_request(manifest_bytes(layer(1, "a"))), cancel=cancel)
        finally:
            store.release()
            timer.cancel()
        assert not store.exists(MANIFEST_KEY)

"""
Tests for existence checks and upload authorization.
"""
from __future__ import annotations

from datetime import timedelta
from urllib.parse import parse_qs, urlsplit

import pytest

from modelops_registry.errors import StoreError, ValidationError
from modelops_registry.models import Layer
from modelops_registry.planner import MAX_PARTS, UploadPolicy, authorize_upload, blob_exists
from modelops_registry.settings import MIB, Settings
from modelops_registry.storage.keys import blob_key

from tests.helpers.manifests import fake_digest
from tests.storage.fakes import FailingStore

POLICY = UploadPolicy(chunk_size=50 * MIB, min_multipart_size=5 * MIB)


def make_layer(size: int, seed: str = "blob") -> Layer:
    return Layer(digest=fake_digest(seed), size=size)


def query(url: str) -> dict:
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


class RecordingAdmission:
    def __init__(self):
        self.admitted = []

    def admit(self, nbytes, deadline=None):
        self.admitted.append((nbytes, deadline))


class TestUploadPolicy:
    """Test policy construction."""

    def test_from_settings(self):
        settings = Settings(bucket="registry", upload_chunk_size=16 * MIB,
                            min_multipart_size=8 * MIB, presign_ttl_s=60)
        policy = UploadPolicy.from_settings(settings)
        assert policy == UploadPolicy(chunk_size=16 * MIB, min_multipart_size=8 * MIB,
                                      ttl=timedelta(seconds=60))

    def test_default_ttl(self):
        assert POLICY.ttl == timedelta(minutes=15)


class TestBlobExists:
    """Test existence checks against blob keys."""

    def test_missing_blob(self, store):
        assert blob_exists(store, fake_digest("a")) is False

    def test_present_blob(self, store):
        store.put_direct(blob_key(fake_digest("a")), b"a")
        assert blob_exists(store, fake_digest("a")) is True

    def test_store_failure_propagates(self):
        store = FailingStore("exists")
        with pytest.raises(StoreError):
            blob_exists(store, fake_digest("a"))


class TestAuthorizeUpload:
    """Test single-part and multipart authorization."""

    def test_small_blob_single_put(self, store):
        layer = make_layer(1000)
        requirements = authorize_upload(store, layer, POLICY)

        assert len(requirements) == 1
        req = requirements[0]
        assert (req.digest, req.offset, req.size) == (layer.digest, 0, 1000)
        assert "uploadId" not in query(req.url)
        assert store.calls["presign_put"] == 1
        assert store.calls["open_multipart"] == 0

    def test_blob_at_threshold_uses_multipart(self, store):
        requirements = authorize_upload(store, make_layer(5 * MIB), POLICY)
        assert len(requirements) == 1
        assert query(requirements[0].url)["partNumber"] == "1"
        assert store.calls["open_multipart"] == 1

    def test_blob_below_chunk_size_is_one_part_session(self, store):
        """20 MiB is multipart (>= 5 MiB) with a single 20 MiB part."""
        layer = make_layer(20 * MIB)
        requirements = authorize_upload(store, layer, POLICY)

        assert len(requirements) == 1
        req = requirements[0]
        assert (req.offset, req.size) == (0, 20 * MIB)
        params = query(req.url)
        assert params["partNumber"] == "1"
        assert store.open_uploads() == {params["uploadId"]: blob_key(layer.digest)}

    def test_large_blob_one_requirement_per_part(self, store):
        layer = make_layer(120 * MIB)
        requirements = authorize_upload(store, layer, POLICY)

        assert [r.offset for r in requirements] == [0, 50 * MIB, 100 * MIB]
        assert [r.size for r in requirements] == [50 * MIB, 50 * MIB, 20 * MIB]
        assert {r.digest for r in requirements} == {layer.digest}
        params = [query(r.url) for r in requirements]
        assert [p["partNumber"] for p in params] == ["1", "2", "3"]
        assert len({p["uploadId"] for p in params}) == 1
        assert store.calls["open_multipart"] == 1

    def test_admission_per_requirement(self, store):
        admission = RecordingAdmission()
        authorize_upload(store, make_layer(120 * MIB), POLICY, admission=admission, deadline=42.0)
        assert admission.admitted == [(50 * MIB, 42.0), (50 * MIB, 42.0), (20 * MIB, 42.0)]

    def test_presign_failure_aborts(self):
        store = FailingStore("presign_multipart_part")
        with pytest.raises(StoreError):
            authorize_upload(store, make_layer(120 * MIB), POLICY)

    def test_open_failure_aborts(self):
        store = FailingStore("open_multipart")
        with pytest.raises(StoreError):
            authorize_upload(store, make_layer(120 * MIB), POLICY)
        assert store.calls["presign_multipart_part"] == 0

    def test_blob_at_part_limit(self, store):
        policy = UploadPolicy(chunk_size=8, min_multipart_size=4)
        requirements = authorize_upload(store, make_layer(8 * MAX_PARTS), policy)
        assert len(requirements) == MAX_PARTS

    def test_blob_over_part_limit_rejected(self, store):
        policy = UploadPolicy(chunk_size=8, min_multipart_size=4)
        layer = make_layer(8 * MAX_PARTS + 1)

        with pytest.raises(ValidationError) as exc_info:
            authorize_upload(store, layer, policy)

        assert exc_info.value.field == "manifest.layers"
        assert exc_info.value.value == layer.digest
        assert store.calls["open_multipart"] == 0

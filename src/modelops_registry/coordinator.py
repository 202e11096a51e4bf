"""
Push coordination.

Main entry point of the push protocol. A push call moves through

    Received -> Validated -> Reconciled -> Planned -> AwaitingUpload | Committed

and either returns outstanding upload requirements or commits the manifest,
never both. The coordinator keeps no state between calls: open multipart
sessions and uploaded parts live in the object store, and every call
re-derives what is missing, so any replica can serve any round of a push.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import List, Optional

from .codec import decode_manifest, decode_push_request
from .errors import RequestCancelled, invalid
from .fanout import run_bounded
from .models import Layer, Manifest, PushRequest, PushResponse, Requirement
from .names import parse_reference
from .planner import UploadPolicy, authorize_upload, blob_exists
from .reconciler import reconcile
from .settings import Settings
from .storage.base import ObjectStore
from .storage.keys import manifest_key
from .throttle import Admission, admission_from_rate

__all__ = ["PushCoordinator"]

logger = logging.getLogger(__name__)


class PushCoordinator:
    """
    Orchestrates one push call against an object store.

    Safe to share between concurrent requests: the store handle and the
    admission gate are the only shared objects, and both are thread-safe.
    """

    def __init__(self, store: ObjectStore, settings: Settings, *,
                 admission: Optional[Admission] = None) -> None:
        """
        Initialize the coordinator.

        Args:
            store: Object store holding blobs, manifests and upload sessions
            settings: Bucket, upload policy, concurrency and deadline settings
            admission: Admission gate (built from settings.transfer_rate if None)
        """
        self.store = store
        self.settings = settings
        self.policy = UploadPolicy.from_settings(settings)
        self.admission = admission if admission is not None else admission_from_rate(settings.transfer_rate)

    def push_body(self, body: bytes, *, cancel: Optional[threading.Event] = None) -> PushResponse:
        """Decode a raw request body and push it."""
        return self.push(decode_push_request(body), cancel=cancel)

    def push(self, request: PushRequest, *,
             cancel: Optional[threading.Event] = None) -> PushResponse:
        """
        Handle one round of a push.

        Args:
            request: Decoded push request
            cancel: Event set when the caller abandons the request; once set,
                outstanding store work is abandoned and nothing is committed

        Returns:
            PushResponse with the outstanding requirements, or with an empty
            list after the manifest has been committed

        Raises:
            ValidationError: Incomplete name, malformed manifest, malformed
                completion records or unknown upload ids
            StoreError: Store failures; nothing is committed
            TransientError: Deadline exceeded, admission refused or request
                cancelled
        """
        deadline = time.monotonic() + self.settings.push_timeout_s

        # Received -> Validated
        ref = parse_reference(request.name)
        reason = ref.incomplete_reason()
        if reason:
            raise invalid("name", request.name, f"must be complete ({reason})")
        manifest = decode_manifest(request.manifest)

        # Validated -> Reconciled
        completed = reconcile(
            self.store,
            request.complete_parts,
            bucket=self.settings.bucket,
            max_workers=self.settings.max_workers,
            deadline=deadline,
            cancel=cancel,
        )
        if completed:
            logger.debug(f"Push {ref}: completed {len(completed)} multipart uploads")

        # Reconciled -> Planned
        requirements = self.plan(manifest, deadline=deadline, cancel=cancel)

        # Planned -> AwaitingUpload
        if requirements:
            logger.debug(f"Push {ref}: {len(requirements)} uploads outstanding")
            return PushResponse(requirements=requirements)

        # Planned -> Committed
        if cancel is not None and cancel.is_set():
            raise RequestCancelled(f"push of {ref} cancelled before commit")
        key = manifest_key(ref)
        self.store.put_direct(key, request.manifest)
        logger.info(f"Committed manifest {ref} ({len(manifest.layers)} layers) to {key}")
        return PushResponse(requirements=[])

    def plan(self, manifest: Manifest, *, deadline: Optional[float] = None,
             cancel: Optional[threading.Event] = None) -> List[Requirement]:
        """
        Compute the upload requirements for every missing blob in a manifest.

        Layers of size 0 are always satisfied. A digest listed more than once
        is planned once. Existence checks and authorizations run in parallel,
        bounded by settings.max_workers; any failure fails the whole plan.

        Returns:
            Requirements grouped by layer in manifest order
        """
        layers = []
        seen = set()
        for layer in manifest.layers:
            if layer.size == 0 or layer.digest in seen:
                continue
            seen.add(layer.digest)
            layers.append(layer)

        per_layer = run_bounded(
            [lambda layer=layer: self._plan_layer(layer, deadline) for layer in layers],
            max_workers=self.settings.max_workers,
            deadline=deadline,
            cancel=cancel,
        )
        return [requirement for group in per_layer for requirement in group]

    def _plan_layer(self, layer: Layer, deadline: Optional[float]) -> List[Requirement]:
        if blob_exists(self.store, layer.digest):
            logger.debug(f"Blob {layer.digest} already present")
            return []
        return authorize_upload(
            self.store,
            layer,
            self.policy,
            admission=self.admission,
            deadline=deadline,
        )

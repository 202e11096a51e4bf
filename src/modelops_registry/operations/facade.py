"""
Operations Facade - Application service layer.

Provides a clean interface between the CLI and the registry client, server
and planner APIs, keeping CLI commands thin and testable.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..chunks import Chunk, plan_chunks
from ..client import PushResult, RegistryClient, directory_reader
from ..settings import DEFAULT_UPLOAD_CHUNK_SIZE, Settings


@dataclass(frozen=True)
class OpsConfig:
    """
    Configuration for Operations facade.

    Centralizes CLI policy decisions to avoid scattered configuration.
    """
    registry_url: str = "http://localhost:8080"
    timeout_s: float = 30.0
    retries: int = 3
    max_rounds: int = 4


class Operations:
    """
    Application service facade for CLI operations.

    One method per CLI verb. Exceptions bubble up for central mapping in
    run_and_exit. A client can be injected for testing.
    """

    def __init__(self, config: OpsConfig, client: Optional[RegistryClient] = None):
        self.cfg = config
        self._client = client

    @classmethod
    def from_settings(cls, registry_url: str, settings: Settings) -> Operations:
        return cls(OpsConfig(
            registry_url=registry_url,
            timeout_s=settings.http_timeout_s,
            retries=settings.http_retry,
        ))

    @property
    def client(self) -> RegistryClient:
        if self._client is None:
            self._client = RegistryClient(
                self.cfg.registry_url,
                timeout=self.cfg.timeout_s,
                retries=self.cfg.retries,
            )
        return self._client

    def push(self, name: str, manifest_path: str | Path, blobs_dir: str | Path) -> PushResult:
        """
        Push a manifest file and the blobs it references.

        Raises:
            FileNotFoundError: If the manifest or blob directory does not exist
        """
        manifest_path = Path(manifest_path)
        blobs_dir = Path(blobs_dir)
        if not manifest_path.is_file():
            raise FileNotFoundError(f"Manifest not found: {manifest_path}")
        if not blobs_dir.is_dir():
            raise FileNotFoundError(f"Blob directory not found: {blobs_dir}")

        return self.client.push(
            name,
            manifest_path.read_bytes(),
            directory_reader(blobs_dir),
            max_rounds=self.cfg.max_rounds,
        )

    def plan_chunks(self, size: int, chunk_size: int = DEFAULT_UPLOAD_CHUNK_SIZE) -> List[Chunk]:
        """Show the multipart layout the registry would use for a blob."""
        return plan_chunks(size, chunk_size)

    def close(self) -> None:
        """Close the registry client if one was created."""
        if self._client is not None:
            self._client.close()

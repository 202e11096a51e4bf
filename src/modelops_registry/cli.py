"""
ModelOps Registry CLI

Implements 3 CLI verbs with Operations facade integration:
- serve: Run the push coordination HTTP service
- push: Push a manifest and its blobs to a registry
- plan-chunks: Show the multipart layout for a blob size
"""
from __future__ import annotations

import logging
import typer
from typing import Optional

from .operations import Operations, OpsConfig, run_and_exit
from .operations.printers import print_chunk_plan, print_push_summary
from .settings import DEFAULT_UPLOAD_CHUNK_SIZE

app = typer.Typer(name="modelops-registry", help="ModelOps Registry CLI")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(8080, "--port", help="Port to listen on"),
    log_level: str = typer.Option("info", "--log-level", envvar="MODELOPS_REGISTRY_LOG_LEVEL", help="Log level"),
) -> None:
    """Run the registry push service."""

    def _serve() -> None:
        import uvicorn
        from .server import create_app_from_env

        logging.basicConfig(
            level=log_level.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        # Settings are validated before binding the port
        application = create_app_from_env()
        uvicorn.run(application, host=host, port=port, log_level=log_level.lower())

    run_and_exit(_serve)


@app.command()
def push(
    name: str = typer.Argument(..., help="Package reference (host/namespace/name:tag)"),
    manifest: str = typer.Argument(..., help="Path to the manifest JSON file"),
    blobs: str = typer.Option(".", "--blobs", help="Directory holding blobs named by digest"),
    registry: str = typer.Option("http://localhost:8080", "--registry", "--url", envvar="MODELOPS_REGISTRY_URL", help="Registry base URL"),
    timeout: float = typer.Option(30.0, "--timeout", help="HTTP timeout in seconds"),
    retries: int = typer.Option(3, "--retries", help="Attempts for retryable failures"),
    max_rounds: int = typer.Option(4, "--max-rounds", help="Give up after this many push rounds"),
) -> None:
    """Push a manifest and upload the blobs the registry asks for."""

    def _push() -> None:
        config = OpsConfig(registry_url=registry, timeout_s=timeout, retries=retries, max_rounds=max_rounds)
        ops = Operations(config=config)
        try:
            result = ops.push(name, manifest, blobs)
        finally:
            ops.close()
        print_push_summary(result)

    run_and_exit(_push)


@app.command("plan-chunks")
def plan_chunks(
    size: int = typer.Argument(..., help="Blob size in bytes"),
    chunk_size: int = typer.Option(DEFAULT_UPLOAD_CHUNK_SIZE, "--chunk-size", help="Part size in bytes"),
) -> None:
    """Show how a blob would be split into multipart parts."""

    def _plan() -> None:
        ops = Operations(config=OpsConfig())
        chunks = ops.plan_chunks(size, chunk_size)
        print_chunk_plan(size, chunks)

    run_and_exit(_plan)


def main(argv: Optional[list] = None) -> None:
    """Entry point for the modelops-registry console script."""
    app(args=argv)


if __name__ == "__main__":
    main()

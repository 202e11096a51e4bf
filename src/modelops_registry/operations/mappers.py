"""
Error mapping and CLI utilities.

Provides centralized exception-to-exit-code mapping and CLI command wrappers
to ensure consistent error handling across all Typer commands.
"""
from __future__ import annotations

import typer
from typing import Callable, TypeVar

from ..errors import NotFoundError, TransientError, ValidationError

T = TypeVar('T')

# Exit codes by error class name; subclasses resolve through their MRO
EXIT_CODES = {
    "NotFoundError": 1,
    "ValidationError": 2,
    "ValueError": 2,
    "FileNotFoundError": 2,
    "TransientError": 3,
    "StoreError": 3,
}

FALLBACK_EXIT_CODE = 3


def exit_code_for(exc: BaseException) -> int:
    """
    Map exception to standardized exit code.

    - 1: Not found (NotFoundError)
    - 2: Invalid input (ValidationError, ValueError, missing files)
    - 3: Registry or store unavailable (TransientError, StoreError) or unknown error

    Args:
        exc: Exception to map

    Returns:
        Exit code, with 3 as fallback for unknown exceptions
    """
    for cls in type(exc).__mro__:
        if cls.__name__ in EXIT_CODES:
            return EXIT_CODES[cls.__name__]
    return FALLBACK_EXIT_CODE


def run_and_exit(func: Callable[[], T]) -> T:
    """
    Unified error wrapper for CLI commands.

    Executes the given function and maps any exceptions to appropriate
    exit codes using typer.Exit, printing the error message to stderr.

    Raises:
        typer.Exit: With appropriate exit code if function raises exception
    """
    try:
        return func()
    except (ValidationError, NotFoundError, TransientError) as e:
        detail = f" ({e.field}={e.value})" if e.field and e.value else ""
        typer.echo(f"Error: {e.message}{detail}", err=True)
        raise typer.Exit(code=exit_code_for(e)) from e
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=exit_code_for(e)) from e

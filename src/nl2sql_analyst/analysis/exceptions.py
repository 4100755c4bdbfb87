"""Custom exception hierarchy for the progressive analysis pipeline.

The pipeline distinguishes failures by how far they are allowed to travel:

- Fatal errors abort the whole run (reconnaissance could not list anything)
- Per-table errors skip or penalize one candidate table and continue
- Per-step errors are recorded on the step and execution continues
- Narrative errors are always replaced by fixed fallback text

Everything raised by this package derives from `AnalystError`.
"""

from __future__ import annotations


class AnalystError(Exception):
    """Base exception for analysis operations.

    This is the root exception class for every error raised by the analysis
    pipeline and its external capabilities.
    """


class FatalDiscoveryError(AnalystError):
    """Raised when the reconnaissance phase cannot obtain a schema or table list.

    Without a table catalog there is nothing to score, so this error
    aborts the run unless the caller disabled fatal reconnaissance.
    """


class PerTableError(AnalystError):
    """Raised when structural analysis, relationship discovery or sampling
    fails for a single candidate table.

    Discovery catches it, logs it and skips or penalizes that table only.
    """

    def __init__(self, table: str, phase: str, reason: str) -> None:
        super().__init__(f"{phase} failed for {table}: {reason}")
        self.table = table
        self.phase = phase
        self.reason = reason


class StepExecutionError(AnalystError):
    """Raised when a single plan step's SQL or introspection call fails.

    The executor records the message as the step's reasoning, leaves the
    step's results empty and moves on to the next step.
    """


class SecurityViolation(StepExecutionError):
    """Raised when a statement that does not start with SELECT is submitted.

    This is a hard failure for the offending step but never for the run.
    """


class NarrativeError(AnalystError):
    """Raised when a justification, summary or answer cannot be produced.

    Callers always replace the missing text with a fixed fallback.
    """


class LanguageModelError(AnalystError):
    """Raised when the language-understanding capability returns malformed
    or unparseable output, or cannot be reached at all.
    """


class IntrospectionError(AnalystError):
    """Raised when a database metadata or query call fails.

    Wraps driver and SQLAlchemy errors so the pipeline only needs to
    know about this package's taxonomy.
    """


class RunCancelled(AnalystError):
    """Raised at a checkpoint when the caller cancelled the run or its
    deadline has passed.
    """

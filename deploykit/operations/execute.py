"""Running operations and sequences with retries, reporting and reuse of earlier results."""

from __future__ import annotations

import dataclasses
import itertools
import random
import time
from dataclasses import dataclass
from typing import Any, Callable

from deploykit.operations.hashing import construct_unique_hash
from deploykit.operations.operation import Bundle, Definition, Operation
from deploykit.operations.report import (
    RecentReporter,
    Report,
    ReportError,
    SequenceReport,
    new_report,
)
from deploykit.operations.sequence import Sequence
from deploykit.operations.validation import is_serializable

_NOT_SERIALIZABLE_MESSAGE = (
    "data cannot be safely written to disk without data lost, "
    "avoid type that can't be serialized"
)


class NotSerializableError(ValueError):
    """Raised when an input or output cannot be stored as JSON without loss."""

    def __init__(self, context: str = "") -> None:
        message = f"{context}: {_NOT_SERIALIZABLE_MESSAGE}" if context else _NOT_SERIALIZABLE_MESSAGE
        super().__init__(message)
        self.context = context


class UnrecoverableError(Exception):
    """Raised inside an operation to stop it from being retried."""

    def __init__(self, error: BaseException | str) -> None:
        super().__init__(str(error))
        self.error = error
        if isinstance(error, BaseException):
            self.__cause__ = error


@dataclass
class RetryConfig:
    """How a failing operation is retried.

    ``input_hook(input, deps)`` returns the input to use for the next attempt;
    it is ignored when retries are disabled. Zero attempts means no limit.
    """

    disable_retry: bool = False
    input_hook: Callable[[Any, Any], Any] | None = None
    attempts: int = 10
    delay: float = 0.1
    max_jitter: float = 0.1


def _failure(report: Report, cause: BaseException) -> ReportError:
    failure = ReportError(report.err.message if report.err is not None else str(cause))
    failure.report = report  # type: ignore[attr-defined]
    return failure


def _run_with_retry(
    bundle: Bundle, operation: Operation, deps: Any, input: Any, config: RetryConfig
) -> Any:
    current = input
    attempts = itertools.count(1) if config.attempts <= 0 else range(1, config.attempts + 1)
    for attempt in attempts:
        try:
            return operation.execute(bundle, deps, current)
        except UnrecoverableError:
            raise
        except Exception as exc:
            if config.attempts > 0 and attempt >= config.attempts:
                raise
            bundle.logger.info(
                "Operation failed. Retrying...",
                extra={"operation": operation.id, "attempt": attempt, "error": str(exc)},
            )
            if config.input_hook is not None:
                current = config.input_hook(current, deps)
            time.sleep(config.delay * 2 ** (attempt - 1) + random.uniform(0, config.max_jitter))
    raise AssertionError("unreachable")


def load_previous_successful_report(
    bundle: Bundle,
    definition: Definition,
    input: Any,
    input_type: Any = None,
    output_type: Any = None,
) -> Report | None:
    """Return an earlier successful report for the same definition and input, if any."""
    try:
        reports = bundle.reporter.get_reports()
    except Exception as err:  # noqa: BLE001 - a broken reporter just means "not found"
        bundle.logger.error("Failed to get reports: %s", err)
        return None
    try:
        current = construct_unique_hash(bundle.report_hash_cache, definition, input)
    except (TypeError, ValueError) as err:
        bundle.logger.error("Failed to construct unique hash: %s", err)
        return None

    for report in reports:
        try:
            previous = construct_unique_hash(
                bundle.report_hash_cache, report.definition, report.input
            )
        except (TypeError, ValueError) as err:
            bundle.logger.error("Failed to construct unique hash for previous report: %s", err)
            continue
        if previous != current or report.err is not None:
            continue
        try:
            typed = report.typed(input_type, output_type)
        except (TypeError, ValueError):
            bundle.logger.debug(
                f"Previous {definition.id} execution found but couldn't find its matching Report",
                extra={"report_id": report.id},
            )
            continue
        bundle.logger.debug(
            f"Previous {definition.id} execution found. Returning its result from Report storage",
            extra={"report_id": report.id},
        )
        return typed
    return None


def execute_operation(
    bundle: Bundle,
    operation: Operation,
    deps: Any,
    input: Any,
    retry_config: RetryConfig | None = None,
) -> Report:
    """Run an operation and record its report.

    A previous successful run with the same definition and input is returned
    instead of running again. On failure a ReportError is raised whose
    ``report`` attribute holds the recorded report.
    """
    if not is_serializable(bundle.logger, input):
        raise NotSerializableError(f"operation {operation.id} input")

    previous = load_previous_successful_report(
        bundle, operation.definition, input, operation.input_type, operation.output_type
    )
    if previous is not None:
        bundle.logger.info(
            "Operation already executed. Returning previous result",
            extra={
                "id": operation.id,
                "version": operation.version,
                "description": operation.description,
            },
        )
        return previous

    config = retry_config if retry_config is not None else RetryConfig()
    error: Exception | None = None
    output: Any = None
    try:
        if config.disable_retry:
            output = operation.execute(bundle, deps, input)
        else:
            output = _run_with_retry(bundle, operation, deps, input, config)
    except Exception as exc:
        error = exc

    if error is None and not is_serializable(bundle.logger, output):
        raise NotSerializableError(f"operation {operation.id} output")

    report = new_report(operation.definition, input, output, error)
    bundle.reporter.add_report(report)
    if error is not None:
        raise _failure(report, error) from error
    return report


def _as_sequence_report(report: Report, execution_reports: list[Report]) -> SequenceReport:
    values = {f.name: getattr(report, f.name) for f in dataclasses.fields(Report)}
    return SequenceReport(**values, execution_reports=list(execution_reports))


def execute_sequence(bundle: Bundle, sequence: Sequence, deps: Any, input: Any) -> SequenceReport:
    """Run a sequence and record its report with the ids of the reports it produced.

    A previous successful run with the same definition and input is returned
    instead of running again. On failure a ReportError is raised whose
    ``report`` attribute holds the sequence report.
    """
    if not is_serializable(bundle.logger, input):
        raise NotSerializableError(f"sequence {sequence.id} input")

    log_fields = {
        "id": sequence.id,
        "version": sequence.version,
        "description": sequence.description,
    }
    previous = load_previous_successful_report(
        bundle, sequence.definition, input, sequence.input_type, sequence.output_type
    )
    if previous is not None:
        execution_reports = bundle.reporter.get_execution_reports(previous.id)
        bundle.logger.info(
            "Sequence already executed. Returning previous result", extra=log_fields
        )
        return _as_sequence_report(previous, execution_reports)

    bundle.logger.info("Executing sequence", extra=log_fields)
    recent = RecentReporter(bundle.reporter)
    child_bundle = Bundle(
        logger=bundle.logger,
        get_context=bundle.get_context,
        reporter=recent,
        report_hash_cache=bundle.report_hash_cache,
    )

    error: Exception | None = None
    output: Any = None
    try:
        output = sequence.handler(child_bundle, deps, input)
    except NotSerializableError:
        raise
    except Exception as exc:
        error = exc

    if error is None and not is_serializable(bundle.logger, output):
        raise NotSerializableError(f"sequence {sequence.id} output")

    children = [report.id for report in recent.recent_reports()]
    report = new_report(sequence.definition, input, output, error, *children)
    bundle.reporter.add_report(report)
    execution_reports = bundle.reporter.get_execution_reports(report.id)
    sequence_report = _as_sequence_report(report, execution_reports)
    if error is not None:
        raise _failure(sequence_report, error) from error
    return sequence_report
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
import logging
from typing import Any

from rich.console import Console
from sqlalchemy.engine import Dialect
from sqlalchemy.engine.default import DefaultDialect
from sqlalchemy.orm import Session

from conveyor_belt.collector import CollectedFailure, ExceptionCollector
from conveyor_belt.config import FAILURE, SUCCESS, RunConfiguration, RunOptions
from conveyor_belt.database import QueryLog, engine_for, record_scope, transaction_scope
from conveyor_belt.diff import DiffReporter
from conveyor_belt.errors import AbortRun, AggregateFailure, Misconfigured, QueryDumped, RecordFailure, UserAbort
from conveyor_belt.progress import ProgressReporter
from conveyor_belt.sources import DataSource, as_data_source
from conveyor_belt.sql import render_query


logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    SUCCEEDED = "succeeded"
    NO_MATCHING_RECORDS = "no_matching_records"
    QUERY_DUMPED = "query_dumped"
    ABORTED = "aborted"
    ABORTED_BY_USER = "aborted_by_user"
    ABORTED_BY_MISCONFIGURATION = "aborted_by_misconfiguration"
    FAILED = "failed"
    FAILED_WITH_COLLECTED_EXCEPTIONS = "failed_with_collected_exceptions"


@dataclass(frozen=True)
class RunResult:
    status: RunStatus
    exit_code: int
    message: str = ""
    processed: int = 0
    failures: tuple[CollectedFailure, ...] = ()
    error: BaseException | None = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == SUCCESS


class BatchRunner:
    """Drives a command's ``handle_row`` over every record its query yields.

    One instance handles one run. ``run()`` never raises: every failure is
    printed and turned into an exit code, with the details left on ``result``.
    """

    def __init__(
        self,
        command: Any,
        options: RunOptions | None = None,
        *,
        session: Session | None = None,
        console: Console | None = None,
        confirm: Callable[[str], bool] | None = None,
        default_chunk_size: int = 1000,
    ) -> None:
        self.command = command
        self.options = options or RunOptions()
        self.session = session if session is not None else getattr(command, "session", None)
        self.console = console or Console()
        self.default_chunk_size = default_chunk_size

        # Replaced in _prepare, where the chunk size is validated.
        self.config = RunConfiguration.resolve(self.options)
        self.progress = ProgressReporter(self.console, step_mode=self.config.step_mode, confirm=confirm)
        self.diff = DiffReporter(self.console, enabled=self.config.diff_mode)
        self.exceptions = ExceptionCollector()
        self.query_log: QueryLog | None = None
        self.processed = 0
        self.result: RunResult | None = None

        self._source: DataSource | None = None

    @property
    def command_name(self) -> str:
        return type(self.command).__name__

    def run(self) -> int:
        self.result = self._execute()
        logger.info(
            "batch run finished",
            extra={
                "command": self.command_name,
                "status": self.result.status.value,
                "processed": self.result.processed,
                "collected_failures": len(self.result.failures),
            },
        )
        return self.result.exit_code

    def _execute(self) -> RunResult:
        try:
            self._prepare()
            self._print_intro()
            status = self._start()
            self._finish()
            return self._result(status, SUCCESS)
        except Misconfigured as exc:
            return self._aborted(RunStatus.ABORTED_BY_MISCONFIGURATION, exc)
        except UserAbort as exc:
            return self._aborted(RunStatus.ABORTED_BY_USER, exc)
        except AggregateFailure as exc:
            return self._aborted(RunStatus.FAILED_WITH_COLLECTED_EXCEPTIONS, exc)
        except QueryDumped as exc:
            return self._aborted(RunStatus.QUERY_DUMPED, exc)
        except AbortRun as exc:
            return self._aborted(RunStatus.ABORTED, exc)
        except RecordFailure as exc:
            logger.error(
                "record handler failed; run aborted",
                exc_info=exc.cause,
                extra={"command": self.command_name, "processed": self.processed},
            )
            self.console.print(str(exc), style="bold red", markup=False, highlight=False)
            return self._result(RunStatus.FAILED, FAILURE, message=str(exc), error=exc.cause)
        except Exception as exc:
            message = f"{type(exc).__name__}: {exc}"
            logger.error(
                "batch run failed",
                exc_info=exc,
                extra={"command": self.command_name, "processed": self.processed},
            )
            self.console.print(message, style="bold red", markup=False, highlight=False)
            return self._result(RunStatus.FAILED, FAILURE, message=message, error=exc)
        finally:
            self.progress.finish()
            if self.query_log is not None:
                self.query_log.disable()

    def _prepare(self) -> None:
        self._verify_command_setup()
        self.config = self._resolve_configuration()
        self._prepare_for_query_logging()

        # Runs before the --dump-sql check so the command can set up anything
        # its query depends on.
        self._call("before_first_row", None)

        self._dump_sql_and_abort_if_requested()

    def _start(self) -> RunStatus:
        count = self._data_source().count()
        if not count:
            self.console.print(f"There are no {self._row_name_plural()} that match your query.", style="green")
            logger.info("no matching records", extra={"command": self.command_name})
            return RunStatus.NO_MATCHING_RECORDS

        self.progress.start(count, self._row_name())

        if self.config.use_transaction:
            with transaction_scope(self.session):
                self._execute_query()
        else:
            self._execute_query()

        self.progress.finish()
        return RunStatus.SUCCEEDED

    def _finish(self) -> None:
        self._call("after_last_row", None)
        self._show_summary()

    def _execute_query(self) -> None:
        self._call("before_first_query", None)

        for chunk in self._data_source().fetch_chunks(self.config.chunk_size):
            prepare_chunk = getattr(self.command, "prepare_chunk", None)
            if callable(prepare_chunk):
                prepare_chunk(chunk)
            for record in chunk:
                self._present_row(record)

    def _present_row(self, record: Any) -> None:
        original = self.diff.capture_before(record)
        try:
            with record_scope(self.session, nested=self.config.use_transaction):
                self.command.handle_row(record)
        except AbortRun:
            raise
        except Exception as exc:
            self._handle_row_exception(exc, record)

        self.processed += 1
        self.progress.advance()

        self._log_sql()
        self.diff.print_diff(record, original, self._row_name())
        self._pause_if_stepping()

    def _handle_row_exception(self, exc: Exception, record: Any) -> None:
        if not self.config.collect_exceptions:
            self.progress.finish()
            raise RecordFailure(record, exc) from exc

        failure = self.exceptions.append(exc, record, verbose=self.config.verbose, row_name=self._row_name())
        logger.warning(
            "record failed; continuing",
            extra={"command": self.command_name, "error": str(failure.cause)},
        )

    def _log_sql(self) -> None:
        if not self.config.sql_log_mode or self.query_log is None:
            return

        self.console.rule("SQL Queries Executed", align="left")
        dialect = self._dialect()
        for entry in self.query_log.drain():
            if entry.executemany:
                for parameters in entry.parameters:
                    self._print_query(render_query(entry.statement, parameters, dialect))
            else:
                self._print_query(render_query(entry.statement, entry.parameters, dialect))
        self.console.print()

    def _pause_if_stepping(self) -> None:
        if self.config.step_mode and not self.progress.pause_for_confirmation("Continue?"):
            raise UserAbort()

    def _verify_command_setup(self) -> None:
        for hook in ("handle_row", "query"):
            if not callable(getattr(self.command, hook, None)):
                raise Misconfigured(f"You must implement {self.command_name}.{hook}()")

    def _resolve_configuration(self) -> RunConfiguration:
        use_transaction = bool(self._call("use_transaction", False))
        if use_transaction and self.session is None:
            raise Misconfigured(f"{self.command_name} uses a transaction but no database session is configured")

        try:
            return RunConfiguration.resolve(
                self.options,
                collect_exceptions=bool(self._call("collect_exceptions", False)),
                use_transaction=use_transaction,
                chunk_size=self._call("chunk_size", None) or self.default_chunk_size,
            )
        except ValueError as exc:
            raise Misconfigured(f"{self.command_name}: {exc}") from exc

    def _prepare_for_query_logging(self) -> None:
        if not self.config.sql_log_mode:
            return
        if self.session is None:
            raise Misconfigured("The --log-sql flag requires a database session")

        self.query_log = QueryLog(engine_for(self.session))
        self.query_log.enable()

    def _dump_sql_and_abort_if_requested(self) -> None:
        if not self.config.dump_query_only:
            return

        query = self._data_source().to_query_text()
        self._print_query(render_query(query.sql, query.parameters, self._dialect(), query.paramstyle))
        raise QueryDumped()

    def _print_query(self, sql: str) -> None:
        self.console.print()
        self.console.print(sql, markup=False, highlight=False, soft_wrap=True)

    def _print_intro(self) -> None:
        transaction_status = (
            "(using a database transaction)" if self.config.use_transaction else "(no database transaction)"
        )
        self.console.print(f"Querying {self._row_name_plural()} {transaction_status}...", style="green")
        logger.info(
            "batch run started",
            extra={
                "command": self.command_name,
                "use_transaction": self.config.use_transaction,
                "collect_exceptions": self.config.collect_exceptions,
                "step_mode": self.config.step_mode,
            },
        )

    def _show_summary(self) -> None:
        if self.exceptions.is_empty():
            return

        self.console.print()
        self.console.rule("Exceptions Triggered During Run", align="left")
        for rendered in self.exceptions.render():
            self.console.print(rendered, style="red", markup=False, highlight=False)
            self.console.print()

        raise AggregateFailure(self.exceptions.failures)

    def _data_source(self) -> DataSource:
        if self._source is None:
            self._source = as_data_source(
                self.command.query(),
                self.session,
                chunk_column=self._call("chunk_column", None),
                owner=self.command_name,
            )
        return self._source

    def _dialect(self) -> Dialect:
        if self.session is None:
            return DefaultDialect()
        return engine_for(self.session).dialect

    def _call(self, hook: str, default: Any) -> Any:
        method = getattr(self.command, hook, None)
        return method() if callable(method) else default

    def _row_name(self) -> str:
        return self._call("get_row_name", "record")

    def _row_name_plural(self) -> str:
        return self._call("get_row_name_plural", None) or f"{self._row_name()}s"

    def _aborted(self, status: RunStatus, exc: AbortRun) -> RunResult:
        if exc.message:
            self.console.print(exc.message, style="bold red", markup=False, highlight=False)
            logger.warning("batch run aborted", extra={"command": self.command_name, "reason": exc.message})
        return self._result(status, exc.code, message=exc.message)

    def _result(
        self,
        status: RunStatus,
        exit_code: int,
        *,
        message: str = "",
        error: BaseException | None = None,
    ) -> RunResult:
        return RunResult(
            status=status,
            exit_code=exit_code,
            message=message,
            processed=self.processed,
            failures=self.exceptions.failures,
            error=error,
        )

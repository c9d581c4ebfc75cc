from dataclasses import dataclass
import os

from dotenv import load_dotenv


load_dotenv()

SUCCESS = 0
FAILURE = 1
INVALID = 2


@dataclass(frozen=True)
class Settings:
    app_name: str
    database_url: str
    log_level: str
    chunk_size: int
    sql_echo: bool


def get_settings() -> Settings:
    return Settings(
        app_name=os.getenv("APP_NAME", "conveyor-belt"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./conveyor.db"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        chunk_size=int(os.getenv("CHUNK_SIZE", "1000")),
        sql_echo=os.getenv("SQL_ECHO", "0").lower() in {"1", "true", "yes"},
    )


@dataclass(frozen=True)
class RunOptions:
    """Flags owned by the runner and parsed by whichever CLI hosts it."""

    dump_sql: bool = False
    log_sql: bool = False
    step: bool = False
    diff: bool = False
    verbose: bool = False

    @property
    def step_mode(self) -> bool:
        # Logging SQL forces step mode so each record's queries can be read.
        return self.step or self.log_sql


@dataclass(frozen=True)
class RunConfiguration:
    step_mode: bool = False
    collect_exceptions: bool = False
    diff_mode: bool = False
    sql_log_mode: bool = False
    use_transaction: bool = False
    dump_query_only: bool = False
    verbose: bool = False
    chunk_size: int = 1000

    def __post_init__(self) -> None:
        if self.sql_log_mode and not self.step_mode:
            raise ValueError("sql_log_mode requires step_mode")
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")

    @classmethod
    def resolve(
        cls,
        options: RunOptions,
        *,
        collect_exceptions: bool = False,
        use_transaction: bool = False,
        chunk_size: int = 1000,
    ) -> "RunConfiguration":
        step_mode = options.step_mode
        return cls(
            step_mode=step_mode,
            collect_exceptions=collect_exceptions,
            diff_mode=options.diff,
            sql_log_mode=options.log_sql,
            use_transaction=use_transaction,
            dump_query_only=options.dump_sql,
            verbose=options.verbose or step_mode,
            chunk_size=chunk_size,
        )

from collections.abc import Callable, Iterable
from typing import Any

from sqlalchemy import Integer, String, select, update
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column

from conveyor_belt.command import BatchCommand


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128))
    touched: Mapped[int] = mapped_column(Integer, default=0)


USER_NAMES = ["Chris Morrell", "Bogdan Kharchenko", "Taylor Otwell", "Mohamed Said"]
NAMES_BY_NAME = sorted(USER_NAMES)


def seed_users(session: Session, names: Iterable[str] = USER_NAMES) -> None:
    session.add_all(User(name=name, touched=0) for name in names)
    session.commit()


def touched_by_name(session: Session) -> dict[str, int]:
    return {user.name: user.touched for user in session.execute(select(User)).scalars()}


def touch(session: Session, row: Any) -> None:
    if isinstance(row, User):
        row.touched += 1
        return
    session.execute(update(User).where(User.id == row.id).values(touched=User.touched + 1))


class Answers:
    """Scripted replies for step-mode prompts; answers yes once the script runs out."""

    def __init__(self, *replies: bool) -> None:
        self.replies = list(replies)
        self.prompts: list[str] = []

    def __call__(self, prompt: str) -> bool:
        self.prompts.append(prompt)
        return self.replies.pop(0) if self.replies else True


class RecordingCommand(BatchCommand):
    row_name = "user"

    def __init__(
        self,
        session: Session | None = None,
        *,
        case: str = "orm",
        handler: Callable[[Any], None] | None = None,
        transaction: bool = False,
        collect: bool = False,
        batch_size: int = 2,
        chunk_by: Any = None,
        records: list[Any] | None = None,
    ) -> None:
        super().__init__(session)
        self.case = case
        self.handler = handler
        self.transaction = transaction
        self.collect = collect
        self.batch_size = batch_size
        self.chunk_by = chunk_by
        self.records = records
        self.calls: list[str] = []
        self.chunks: list[list[Any]] = []

    def query(self) -> Any:
        if self.case == "orm":
            return select(User).order_by(User.name)
        if self.case == "core":
            return select(User.__table__).order_by(User.__table__.c.name)
        if self.case == "by_id":
            return select(User).order_by(User.id)
        if self.case == "filtered":
            return select(User).where(User.name == "Chris Morrell").order_by(User.name)
        if self.case == "empty":
            return select(User).where(User.name == "Nobody").order_by(User.name)
        if self.case == "list":
            return list(self.records or [])
        return 42

    def before_first_row(self) -> None:
        self.calls.append("before_first_row")

    def before_first_query(self) -> None:
        self.calls.append("before_first_query")

    def prepare_chunk(self, chunk: list[Any]) -> None:
        self.calls.append("prepare_chunk")
        self.chunks.append(list(chunk))

    def handle_row(self, row: Any) -> None:
        self.calls.append("handle_row")
        if self.handler is not None:
            self.handler(row)

    def after_last_row(self) -> None:
        self.calls.append("after_last_row")


class MissingHandlerCommand(BatchCommand):
    def query(self) -> Any:
        return select(User)


class MissingQueryCommand(BatchCommand):
    def handle_row(self, row: Any) -> None:
        pass


class UppercaseNames(BatchCommand):
    """Used by the CLI tests."""

    row_name = "user"
    transaction = True

    def query(self) -> Any:
        return select(User).order_by(User.id)

    def handle_row(self, user: User) -> None:
        user.name = user.name.upper()


class FailOnTaylor(UppercaseNames):
    collect = True

    def handle_row(self, user: User) -> None:
        if user.name.startswith("Taylor"):
            raise RuntimeError("Taylor is off limits")
        super().handle_row(user)


def output_of(console: Any) -> str:
    return console.file.getvalue()

"""Ok/Err values for lookups that fail without raising."""

from typing import Generic, NoReturn, TypeVar

from attrs import frozen

T = TypeVar("T")
E = TypeVar("E")


@frozen
class Ok(Generic[T]):
    """Successful lookup."""

    value: T

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_err(self) -> NoReturn:
        raise ValueError("Called unwrap_err on Ok value")


@frozen
class Err(Generic[E]):
    """Failed lookup carrying the reason."""

    error: E

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> NoReturn:
        raise ValueError(f"Called unwrap on Err value: {self.error}")

    def unwrap_err(self) -> E:
        return self.error


Result = Ok[T] | Err[E]

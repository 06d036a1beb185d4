from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    fallback: Optional[T] = None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str = "unknown", fallback: Optional[T] = None) -> "Result[T]":
        return Result(ok=False, error=error, error_code=code, fallback=fallback)

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default

    def unwrap_or_fallback(self) -> Optional[T]:
        """Value on success, the fallback carried by the failure otherwise."""
        return self.value if self.ok else self.fallback

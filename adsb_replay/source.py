"""Pull-based record sources with explicit pause/resume for backpressure."""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Optional, Protocol, Union

from .errors import SourceError

log = logging.getLogger(__name__)

RawRecord = Dict[str, Any]


class _EndOfStream:
    __slots__ = ()

    def __repr__(self) -> str:
        return "END_OF_STREAM"

    def __bool__(self) -> bool:
        return False


END_OF_STREAM = _EndOfStream()

PullResult = Union[RawRecord, _EndOfStream]


class RecordSource(Protocol):
    """Contract the scheduler drives: one record per ``pull`` while resumed."""

    @property
    def paused(self) -> bool: ...

    def pull(self) -> PullResult: ...

    def pause(self) -> None: ...

    def resume(self) -> None: ...


class _PausableSource:
    def __init__(self) -> None:
        self._paused = False
        self._exhausted = False
        self._iterator: Optional[Iterator[RawRecord]] = None

    @property
    def paused(self) -> bool:
        return self._paused

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    def _open(self) -> Iterator[RawRecord]:  # pragma: no cover - abstract
        raise NotImplementedError

    def _wrap_error(self, exc: Exception) -> SourceError:
        return SourceError(f"record source failed: {exc}")

    def pull(self) -> PullResult:
        if self._paused:
            raise RuntimeError("pull() called while the source is paused")
        if self._exhausted:
            return END_OF_STREAM
        try:
            if self._iterator is None:
                self._iterator = self._open()
            return next(self._iterator)
        except StopIteration:
            self._exhausted = True
            self.close()
            return END_OF_STREAM
        except SourceError:
            self.close()
            raise
        except Exception as exc:
            self.close()
            raise self._wrap_error(exc) from exc

    def close(self) -> None:
        self._exhausted = True


class CsvRecordSource(_PausableSource):
    """Lazily yield rows of a header-bearing CSV file as dictionaries.

    The file is opened on the first ``pull`` so a missing path surfaces as a
    ``SourceError`` through the same channel as mid-file read failures.
    """

    def __init__(self, path: str | Path, *, encoding: str = "utf-8") -> None:
        super().__init__()
        self.path = Path(path)
        self.encoding = encoding
        self._handle = None
        self.rows_read = 0

    def _open(self) -> Iterator[RawRecord]:
        self._handle = self.path.open("r", newline="", encoding=self.encoding)
        log.debug("Opened record source %s", self.path)
        return self._rows(csv.DictReader(self._handle))

    def _rows(self, reader: csv.DictReader) -> Iterator[RawRecord]:
        for row in reader:
            self.rows_read += 1
            yield row

    def _wrap_error(self, exc: Exception) -> SourceError:
        return SourceError(f"failed reading {self.path} after {self.rows_read} rows: {exc}")

    def close(self) -> None:
        super().close()
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def __enter__(self) -> "CsvRecordSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class IterableRecordSource(_PausableSource):
    """Adapt an in-memory iterable (or generator) to the source contract."""

    def __init__(self, records: Iterable[RawRecord]) -> None:
        super().__init__()
        self._records = records

    def _open(self) -> Iterator[RawRecord]:
        return iter(self._records)


__all__ = [
    "END_OF_STREAM",
    "PullResult",
    "RawRecord",
    "RecordSource",
    "CsvRecordSource",
    "IterableRecordSource",
]

from __future__ import annotations

from pathlib import Path

import pytest

from adsb_replay import END_OF_STREAM, CsvRecordSource, IterableRecordSource, SourceError


def _write_csv(path: Path) -> Path:
    path.write_text(
        "time,icao,operation,airport\n"
        "2025-11-01 00:00:04,a1b2c3,landing,KSFO\n"
        "2025-11-01 00:00:09,d4e5f6,takeoff,\n",
        encoding="utf-8",
    )
    return path


def test_csv_source_yields_rows_in_order(tmp_path: Path) -> None:
    source = CsvRecordSource(_write_csv(tmp_path / "ops.csv"))

    first = source.pull()
    second = source.pull()

    assert first["icao"] == "a1b2c3"
    assert second["operation"] == "takeoff"
    assert second["airport"] == ""
    assert source.pull() is END_OF_STREAM
    assert source.pull() is END_OF_STREAM
    assert source.rows_read == 2


def test_missing_file_surfaces_as_source_error(tmp_path: Path) -> None:
    source = CsvRecordSource(tmp_path / "absent.csv")
    with pytest.raises(SourceError):
        source.pull()


def test_undecodable_file_surfaces_as_source_error(tmp_path: Path) -> None:
    path = tmp_path / "bad.csv"
    path.write_bytes(b"time,icao\n\xff\xfe\xfa,abc\n")
    source = CsvRecordSource(path)
    with pytest.raises(SourceError):
        while source.pull() is not END_OF_STREAM:
            pass


def test_pull_while_paused_is_rejected() -> None:
    source = IterableRecordSource([{"time": "x"}])
    source.pause()
    assert source.paused
    with pytest.raises(RuntimeError):
        source.pull()
    source.resume()
    assert source.pull() == {"time": "x"}


def test_iterable_errors_are_wrapped() -> None:
    def broken():
        yield {"time": "2025-11-01 00:00:00"}
        raise ValueError("truncated record")

    source = IterableRecordSource(broken())
    source.pull()
    with pytest.raises(SourceError) as excinfo:
        source.pull()
    assert isinstance(excinfo.value.__cause__, ValueError)
    assert source.pull() is END_OF_STREAM


def test_end_of_stream_is_falsy() -> None:
    assert not END_OF_STREAM
    assert repr(END_OF_STREAM) == "END_OF_STREAM"

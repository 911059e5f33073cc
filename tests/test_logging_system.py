"""Tests for the session audit trail (src.logging)."""

import json
import logging

import pytest

from src.logging import AuditFileWriter, LogEntry, LogLevel, LogSource, SessionLogger


# =============================================================================
# LogEntry
# =============================================================================


def test_log_entry_document_shape():
    entry = LogEntry(level=LogLevel.NODE, source="SP-01", message="[SP-01] processing started")
    data = entry.to_dict()
    assert set(data) == {"id", "timestamp", "level", "source", "message"}
    assert data["level"] == "node"
    assert LogEntry.from_dict(data) == entry
    assert json.loads(entry.to_json())["source"] == "SP-01"


def test_log_entry_readable_format():
    entry = LogEntry(level=LogLevel.WARNING, source="SN-00", message="careful", timestamp=0)
    assert entry.to_readable() == "[WARNING] [00:00:00] [SN-00] careful"


def test_levels_map_to_stdlib():
    assert LogLevel.ERROR.python_level == logging.ERROR
    assert LogLevel.SUCCESS.python_level == logging.INFO
    assert LogLevel.NODE.python_level == logging.DEBUG


# =============================================================================
# SessionLogger
# =============================================================================


@pytest.mark.asyncio
async def test_session_logger_appends_with_bound_source(store):
    await store.create_session("s-1", "Launch")
    log = SessionLogger(store, "s-1", "SN-00")

    await log.system("Phase 1 complete.")
    await log.bind(LogSource.MEMORY).success("archived")

    logs = (await store.get_session("s-1")).logs
    assert [(e.level, e.source) for e in logs] == [
        (LogLevel.SYSTEM, "SN-00"),
        (LogLevel.SUCCESS, "MEMORY"),
    ]


@pytest.mark.asyncio
async def test_session_logger_mirrors_to_stdlib(store, caplog):
    await store.create_session("s-1", "Launch")
    with caplog.at_level(logging.INFO, logger="src.logging.session_logger"):
        await SessionLogger(store, "s-1", "RA-01").info("audit started")
    assert "[RA-01] audit started" in caplog.text


@pytest.mark.asyncio
async def test_session_logger_tolerates_store_failure(store, caplog):
    # Session was never created, so the append fails
    entry = await SessionLogger(store, "ghost", "SN-00").error("boom")
    assert entry.message == "boom"
    assert "Failed to append log to session ghost" in caplog.text


# =============================================================================
# AuditFileWriter
# =============================================================================


@pytest.mark.asyncio
async def test_audit_writer_splits_error_levels(store, tmp_path):
    await store.create_session("s-1", "Launch")
    audit = AuditFileWriter(str(tmp_path / "logs"))
    log = SessionLogger(store, "s-1", "DA-03", audit)

    await log.info("concept ready")
    await log.warning("image failed")
    await log.error("node failed")

    main_lines = audit.main_log.read_text(encoding="utf-8").splitlines()
    error_lines = audit.error_log.read_text(encoding="utf-8").splitlines()
    assert len(main_lines) == 3
    assert [json.loads(line)["level"] for line in error_lines] == ["warning", "error"]
    assert json.loads(main_lines[0])["sessionId"] == "s-1"

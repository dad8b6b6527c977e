"""
Tests for the command line runner: safety flags, --show and error exits.
"""

import json

import pytest

import mw_run
from memowallet import core_defs
from memowallet.core_defs import ChainConnectivityError
from memowallet.utils import get_content_from_source


@pytest.fixture
def state_env(tmp_path, monkeypatch):
    monkeypatch.setenv("STATE_DIR", str(tmp_path / "state"))
    monkeypatch.setenv("NETWORK", "test")
    monkeypatch.setattr(mw_run.utils, "setup_logging", lambda config, verbose=False: None)
    return tmp_path / "state"


def test_parse_args_defaults():
    args = mw_run.parse_args([])
    assert args.message is None
    assert not args.dry_run and not args.strict and not args.show and not args.mainnet


@pytest.mark.asyncio
async def test_mainnet_requires_flag(state_env, monkeypatch):
    monkeypatch.setenv("NETWORK", "main")
    assert await mw_run.main([]) == 1


@pytest.mark.asyncio
async def test_mainnet_flag_on_testnet_is_refused(state_env):
    assert await mw_run.main(["--mainnet"]) == 1


@pytest.mark.asyncio
async def test_show_prints_record_states(state_env, capsys):
    assert await mw_run.main(["--show"]) == 0
    shown = json.loads(capsys.readouterr().out)
    assert shown[core_defs.KIND_IDENTITY]["status"] == core_defs.STATUS_NOT_STARTED


@pytest.mark.asyncio
async def test_workflow_errors_exit_nonzero(state_env, monkeypatch):
    async def failing_run(self, message, **kwargs):
        raise ChainConnectivityError("HTTP 503")

    monkeypatch.setattr(mw_run.Workflow, "run", failing_run)
    assert await mw_run.main(["--message", "hi"]) == 1


@pytest.mark.asyncio
async def test_message_options_reach_workflow(state_env, monkeypatch):
    seen = {}

    async def recording_run(self, message, **kwargs):
        seen["message"] = message
        seen.update(kwargs)
        return {"address": "x", "balance": None, "memo": None, "posted": False, "reconciliation": None}

    monkeypatch.setattr(mw_run.Workflow, "run", recording_run)
    assert await mw_run.main(["--message", "hello", "--dry-run", "--skip-reconcile", "--strict"]) == 0
    assert seen == {"message": "hello", "dry_run": True, "reconcile": False, "strict": True}


@pytest.mark.asyncio
async def test_unreadable_message_file(state_env):
    assert await mw_run.main(["--message", "@/nonexistent/memo.txt"]) == 1


def test_message_from_file(tmp_path):
    note = tmp_path / "note.txt"
    note.write_text("from file", encoding="utf-8")
    assert get_content_from_source("@" + str(note)) == "from file"
    assert get_content_from_source(str(note)) == "from file"
    assert get_content_from_source("plain text") == "plain text"
    assert get_content_from_source(None) is None

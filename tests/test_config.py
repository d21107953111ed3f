"""Tests for TOML configuration loading."""

import pytest
from pydantic import ValidationError

from chainsight.config import Settings, load_config


def test_defaults():
    cfg = Settings()
    assert cfg.engine.auto_trigger is True
    assert cfg.engine.web_ports == [80, 443, 8080, 8443, 3000, 5000, 8000, 9000]
    assert cfg.engine.ssh_ports == [22]
    assert cfg.engine.excessive_port_threshold == 10
    assert cfg.lookup.searchsploit_path == "searchsploit"
    assert cfg.probes.timeout == 10.0
    assert cfg.planner.actions == {}


def test_load_from_file(tmp_path):
    path = tmp_path / "chainsight.toml"
    path.write_text(
        "[engine]\n"
        "auto_trigger = false\n"
        "excessive_port_threshold = 20\n"
        "[probes]\n"
        "timeout = 2.5\n"
        "[planner.actions.privilege_escalation]\n"
        "seconds = 60\n"
        "probability = 0.25\n"
    )
    cfg = load_config(path)
    assert cfg.engine.auto_trigger is False
    assert cfg.engine.excessive_port_threshold == 20
    assert cfg.probes.timeout == 2.5
    assert cfg.planner.actions["privilege_escalation"].probability == 0.25


def test_invalid_probability_rejected(tmp_path):
    path = tmp_path / "chainsight.toml"
    path.write_text("[planner.actions.web_exploit]\nseconds = 1\nprobability = 0\n")
    with pytest.raises(ValidationError):
        load_config(path)

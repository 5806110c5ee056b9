"""Tests for the cirrus command-line interface."""

import json
import logging

import pytest

from cirrus.presentation.cli.cli import build_parser, main

IMAGES = [
    {"sourceName": "webA", "serviceName": "svc", "behaviour": "FRESH_CLONE", "maxInstances": 2},
    {"sourceName": "fixed-vm", "serviceName": "svc", "behaviour": "START_STOP"},
]


@pytest.fixture(autouse=True)
def _reset_cirrus_logger():
    logger = logging.getLogger("cirrus")
    handlers, level = list(logger.handlers), logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)


@pytest.fixture
def run(tmp_path):
    def invoke(command, params):
        path = tmp_path / "params.json"
        path.write_text(params if isinstance(params, str) else json.dumps(params))
        return main(
            [
                "--config", str(tmp_path / "absent.json"),
                "--state-root", str(tmp_path / "data"),
                command,
                str(path),
            ]
        )

    return invoke


class TestParser:
    def test_subcommands(self):
        args = build_parser().parse_args(["--debug", "check-profile", "p.json"])
        assert args.command == "check-profile"
        assert args.params == "p.json"
        assert args.debug

    def test_no_command(self, capsys):
        assert main([]) == 2


class TestCheckProfile:
    def test_ok(self, run, make_params, capsys):
        assert run("check-profile", make_params(images=IMAGES)) == 0
        assert capsys.readouterr().out.strip() == "Profile OK"

    def test_problems_listed(self, run, make_params, capsys):
        params = make_params(images="[", subscriptionId="nope", maxInstancesCount="x")
        assert run("check-profile", params) == 1
        lines = capsys.readouterr().out.splitlines()
        assert [line.split(":")[0] for line in lines] == ["subscription", "config", "parse"]

    def test_state_directory_created(self, run, make_params, tmp_path):
        run("check-profile", make_params(images=IMAGES))
        assert (tmp_path / "data" / "azureIdx").is_dir()

    def test_non_string_values_accepted(self, run, make_params, capsys):
        params = make_params(maxInstancesCount=None)
        params["images_data"] = IMAGES
        assert run("check-profile", params) == 0

    def test_unreadable_file(self, tmp_path, capsys):
        assert main(["check-profile", str(tmp_path / "missing.json")]) == 2
        assert "Cannot read" in capsys.readouterr().err

    def test_not_an_object(self, run, capsys):
        assert run("check-profile", "[1, 2]") == 2


class TestListImages:
    def test_listing_hides_passwords(self, run, make_params, capsys):
        params = make_params(images=IMAGES, passwords={"webA": "hunter22"})
        assert run("list-images", params) == 0
        out = capsys.readouterr().out
        lines = out.splitlines()
        assert lines[0].startswith("webA\t")
        assert "max=2" in lines[0]
        assert "password=yes" in lines[0]
        assert "password=no" in lines[1]
        assert "hunter22" not in out

    def test_parse_error(self, run, make_params, capsys):
        assert run("list-images", make_params(images={"not": "a list"})) == 1
        assert capsys.readouterr().err.startswith("parse: ")

"""Tests for the command line interface."""

import argparse
import json
import uuid

import pytest

from offer_scout import cli


def test_crawl_arguments():
    search_id = uuid.uuid4()
    args = cli.build_parser().parse_args([
        "crawl", "-t", "vintage denim", "--search", str(search_id),
        "--max-pages", "3", "--headless", "false", "--mode", "never",
    ])

    assert args.command == "crawl"
    assert args.term == "vintage denim"
    assert args.search == search_id
    assert args.max_pages == 3
    assert args.max_items is None
    assert args.headless is False
    assert args.mode == "never"


def test_eval_defaults():
    args = cli.build_parser().parse_args(["eval", "--search", str(uuid.uuid4())])

    assert args.batch_size is None
    assert args.max_offers == 0
    assert args.force is False
    assert args.dry_run is False


def test_create_search_collects_terms():
    args = cli.build_parser().parse_args([
        "create-search", "--name", "Quiet luxury", "--prompt", "Muted knits",
        "--examples", "refs.json", "--term", "cashmere", "--term", "merino",
    ])
    assert args.terms == ["cashmere", "merino"]


@pytest.mark.parametrize("argv", [
    ["crawl", "--term", "x"],
    ["crawl", "--term", "x", "--search", "not-a-uuid"],
    ["eval", "--search", str(uuid.uuid4()), "--batch-size", "0"],
    ["eval", "--search", str(uuid.uuid4()), "--strictness", "extreme"],
])
def test_invalid_arguments_exit(argv):
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(argv)


def test_parse_bool():
    assert cli.parse_bool("TRUE") is True
    assert cli.parse_bool(" off ") is False
    with pytest.raises(argparse.ArgumentTypeError):
        cli.parse_bool("maybe")


def test_load_example_images(tmp_path):
    path = tmp_path / "refs.json"
    path.write_text(json.dumps(["https://example.com/a.jpg", " ", "./refs/b.png"]))
    assert cli.load_example_images(str(path)) == ["https://example.com/a.jpg", "./refs/b.png"]

    path.write_text(json.dumps({"images": []}))
    with pytest.raises(ValueError):
        cli.load_example_images(str(path))

    path.write_text("[]")
    with pytest.raises(ValueError):
        cli.load_example_images(str(path))


def test_main_reports_failure_exit_code(monkeypatch):
    async def failing(args):
        raise RuntimeError("JUDGMENT_API_KEY is not configured")

    monkeypatch.setattr(cli, "setup_logging", lambda: None)
    monkeypatch.setitem(cli.COMMANDS, "eval", failing)

    assert cli.main(["eval", "--search", str(uuid.uuid4())]) == 1

import pytest

from mirtargetlink.breadcrumbs import BreadcrumbLog


def test_entries_are_kept_in_call_order() -> None:
    log = BreadcrumbLog()
    log.open("s1")

    log.append("s1", tool="run_mirtargetlink", input={"query": "TP53"}, output={"success": True})
    log.append("s1", tool="run_mirtargetlink", input={"query": "MDM2"}, output={"success": False})

    assert [crumb.input["query"] for crumb in log.entries("s1")] == ["TP53", "MDM2"]


def test_sessions_are_isolated() -> None:
    log = BreadcrumbLog()
    log.open("s1")
    log.open("s2")

    log.append("s1", tool="ping", input={}, output="pong: hello")

    assert len(log.entries("s1")) == 1
    assert log.entries("s2") == []


def test_entries_are_snapshots() -> None:
    log = BreadcrumbLog()
    log.open("s1")
    arguments = {"query": "TP53", "mode": "validated"}

    crumb = log.append("s1", tool="run_mirtargetlink", input=arguments, output={"interactions": []})
    arguments["query"] = "changed"

    assert crumb.input["query"] == "TP53"
    assert crumb.to_payload()["tool"] == "run_mirtargetlink"
    assert crumb.time.endswith("+00:00")


def test_append_requires_open_session() -> None:
    log = BreadcrumbLog()

    with pytest.raises(KeyError):
        log.append("missing", tool="ping", input={}, output=None)


def test_close_discards_history() -> None:
    log = BreadcrumbLog()
    log.open("s1")
    log.append("s1", tool="ping", input={}, output="pong: hello")

    log.close("s1")

    assert not log.is_open("s1")
    assert log.entries("s1") == []

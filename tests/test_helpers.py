import os
from datetime import datetime, timedelta, timezone

import pytest

from omc.helpers import (
    OmcError, cat, extract_label, extract_labels, format_diff_time,
    format_output, format_table, get_age, get_json_template, match_labels,
    match_labels_from_map, rand_string, read_yaml, render_json_path,
    select_row, short_human_duration, translate_timestamp,
)


def test_rand_string_length_and_charset():
    s = rand_string(20)
    assert len(s) == 20
    assert s.isalnum()


def test_format_diff_time_unknown_for_huge():
    assert format_diff_time(timedelta(hours=300000)) == "Unknown"


def test_format_diff_time_units():
    assert format_diff_time(timedelta(days=5)).endswith("d")
    assert format_diff_time(timedelta(seconds=30)) == "30s"


def test_short_human_duration_edges():
    assert short_human_duration(timedelta(seconds=-5)) == "<invalid>"
    assert short_human_duration(timedelta(seconds=-1)) == "0s"
    assert short_human_duration(timedelta(days=800)).endswith("y")


def test_get_json_template():
    assert get_json_template("jsonpath={.a}") == "{.a}"
    assert get_json_template("yaml") == ""
    with pytest.raises(OmcError):
        get_json_template("jsonpath=")


def test_render_json_path_fields_and_range():
    data = {"items": [{"metadata": {"name": "a"}}, {"metadata": {"name": "b"}}]}
    assert render_json_path(data, "{.items[0].metadata.name}") == "a"
    assert render_json_path(data, "{.items[*].metadata.name}") == "a b"
    out = render_json_path(data, "{range .items[*]}{.metadata.name},{end}")
    assert out == "a,b,"


def test_render_json_path_parse_error():
    with pytest.raises(OmcError):
        render_json_path({}, "{.a")


def test_select_row():
    row = ["ns", "name", "age", "extra"]
    assert select_row(row, True, False, "", "", 3) == ["ns", "name", "age"]
    assert select_row(row, False, False, "", "wide", 3) == ["name", "age", "extra"]
    assert select_row(row, False, True, "x=y", "", 2) == ["name", "x=y"]


def test_extract_labels():
    assert extract_labels({}) == "<none>"
    assert extract_labels({"k": "v"}) == "k=v"
    assert extract_label({"k": "v"}, "k") == "v"
    assert extract_label({"k": "v"}, "z") == ""


def test_match_labels():
    assert match_labels("app=web,tier=fe", "")
    assert match_labels("app=web,tier=fe", "web")
    assert match_labels("app=web,tier=fe", "tier==fe")
    assert not match_labels("app=web,tier=fe", "tier!=fe")
    assert not match_labels("app=web", "tier=fe")


def test_match_labels_from_map():
    labels = {"app": "web", "tier": "fe"}
    assert match_labels_from_map(labels, "app=web,tier==fe")
    assert not match_labels_from_map(labels, "tier!=fe")
    assert match_labels_from_map(labels, "web")
    assert not match_labels_from_map(labels, "missing=x")
    with pytest.raises(OmcError):
        match_labels_from_map(labels, "a=b=c")


def test_read_yaml_drops_three_char_lines(tmp_path):
    f = tmp_path / "x.yaml"
    f.write_text("abc\nkind: Pod\n")
    assert read_yaml(f) == b"kind: Pod\n"
    with pytest.raises(OmcError):
        read_yaml(tmp_path / "missing.yaml")


def test_get_age(tmp_path):
    assert get_age(tmp_path / "none", None) == "Unknown"
    ts = tmp_path / "timestamp"
    ts.write_text("")
    now = datetime.now(timezone.utc)
    os.utime(ts, (now.timestamp(), now.timestamp()))
    assert get_age(tmp_path, now - timedelta(days=5)) == format_diff_time(timedelta(days=5))


def test_translate_timestamp(tmp_path):
    assert translate_timestamp(tmp_path, None) == "<unknown>"
    (tmp_path / "namespaces").mkdir()
    now = datetime.now(timezone.utc)
    os.utime(tmp_path / "namespaces", (now.timestamp(), now.timestamp()))
    res = translate_timestamp(tmp_path, now - timedelta(days=3))
    assert res == short_human_duration(timedelta(days=3))


def test_format_table_and_output():
    table = format_table(["name", "age"], [["a", "1"]])
    assert table.splitlines()[0].split() == ["NAME", "AGE"]
    out = format_output({"a": 1}, 2, "json", False, False, [], [], "")
    assert out == '{\n  "a": 1\n}\n'
    tab = format_output(None, 2, "", False, True, ["ns", "name"], [["x", "k=v"]], "")
    assert tab.splitlines()[0].split() == ["NAME", "LABELS"]


def test_cat(tmp_path):
    f = tmp_path / "f.txt"
    f.write_text("hello")
    assert cat(f) == "hello"
    with pytest.raises(OmcError):
        cat(tmp_path / "nope")
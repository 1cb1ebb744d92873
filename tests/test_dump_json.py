import json


def test_load_samples_accepts_legacy_keys_and_drops_connected() -> None:
    from nodescope.dump import load_samples_jsonl

    text = "\n".join(
        [
            json.dumps(
                {
                    "TimeStamp": "2025-01-01T00:00:01.750Z",
                    "Type": "InternetConnectivity",
                    "URL": "google.com:80",
                    "Connected": False,
                    "Error": "dial tcp: i/o timeout",
                }
            ),
            "",
            json.dumps({"timestamp": "2025-01-01T00:00:02Z", "target": "InternetConnectivity", "connected": True}),
            json.dumps({"timestamp": "2025-01-01T00:00:03Z", "target": "ACRConnectivity", "error": "refused"}),
        ]
    )

    samples = load_samples_jsonl(text)

    assert [s.target for s in samples] == ["InternetConnectivity", "ACRConnectivity"]
    assert samples[0].endpoint == "google.com:80"
    assert samples[0].error == "dial tcp: i/o timeout"
    assert samples[0].timestamp.microsecond == 0


def test_load_samples_reports_line_number_on_bad_input() -> None:
    import pytest

    from nodescope.dump import load_samples_jsonl
    from nodescope.errors import CoalesceError

    with pytest.raises(CoalesceError, match="line 2"):
        load_samples_jsonl('{"timestamp": "2025-01-01T00:00:00Z", "target": "x", "error": "e"}\nnot json\n')

    with pytest.raises(CoalesceError, match="line 1"):
        load_samples_jsonl('{"target": "x", "error": "e"}')


def test_incidents_to_json_dict_counts_by_target() -> None:
    from datetime import datetime, timezone

    from nodescope.core.models import Incident
    from nodescope.dump import incidents_to_json_dict

    t = datetime(2025, 1, 1, tzinfo=timezone.utc)
    out = incidents_to_json_dict(
        [
            Incident(target="a", start=t, end=t, error="e1"),
            Incident(target="a", start=t, end=t, error="e2"),
            Incident(target="b", start=t, end=t, error="e1"),
        ]
    )

    assert out["incident_count"] == 3
    assert out["by_target"] == {"a": 2, "b": 1}
    assert out["incidents"][0]["start"].startswith("2025-01-01T00:00:00")


def test_cli_coalesce_dump_json(tmp_path, capsys) -> None:
    import main

    path = tmp_path / "samples.jsonl"
    rows = [
        {"timestamp": "2025-01-01T00:00:00Z", "target": "api", "error": "ErrA"},
        {"timestamp": "2025-01-01T00:00:02Z", "target": "api", "error": "ErrA"},
        {"timestamp": "2025-01-01T00:00:10Z", "target": "api", "error": "ErrA"},
        {"timestamp": "2025-01-01T00:00:11Z", "target": "api", "error": "ErrB"},
    ]
    path.write_text("".join(json.dumps(r) + "\n" for r in rows), encoding="utf-8")

    rc = main.main(["--coalesce", str(path), "--gap-seconds", "5", "--dump-json"])

    assert rc == 0
    out = json.loads(capsys.readouterr().out)
    assert out["incident_count"] == 3
    assert [(i["error"], i["start"][11:19], i["end"][11:19]) for i in out["incidents"]] == [
        ("ErrA", "00:00:00", "00:00:02"),
        ("ErrA", "00:00:10", "00:00:10"),
        ("ErrB", "00:00:11", "00:00:11"),
    ]


def test_cli_coalesce_human_output(tmp_path, capsys) -> None:
    import main

    path = tmp_path / "samples.jsonl"
    path.write_text(
        json.dumps({"timestamp": "2025-01-01T10:20:30Z", "target": "dns", "error": "timeout"}) + "\n",
        encoding="utf-8",
    )

    assert main.main(["--coalesce", str(path)]) == 0

    out = capsys.readouterr().out
    assert "1 incident(s)" in out
    assert "dns  10:20:30Z -> 10:20:30Z  (0s)  timeout" in out


def test_cli_coalesce_rejects_out_of_order_samples(tmp_path, capsys) -> None:
    import main

    path = tmp_path / "samples.jsonl"
    rows = [
        {"timestamp": "2025-01-01T00:00:10Z", "target": "api", "error": "ErrA"},
        {"timestamp": "2025-01-01T00:00:05Z", "target": "api", "error": "ErrA"},
    ]
    path.write_text("".join(json.dumps(r) + "\n" for r in rows), encoding="utf-8")

    assert main.main(["--coalesce", str(path)]) == 1
    assert "Fatal" in capsys.readouterr().err


def test_format_timestamp_for_display() -> None:
    from main import format_timestamp_for_display

    assert format_timestamp_for_display("2025-01-01T10:20:30+00:00") == "10:20:30Z"
    assert format_timestamp_for_display("") == "N/A"
    assert format_timestamp_for_display("not-a-timestamp") == "not-a-timestamp"


def test_load_samples_rejects_non_boolean_connected() -> None:
    import pytest

    from nodescope.dump import load_samples_jsonl
    from nodescope.errors import CoalesceError

    row = {"timestamp": "2025-01-01T00:00:00Z", "target": "x", "connected": "false", "error": "e"}
    with pytest.raises(CoalesceError, match="'connected' must be true or false"):
        load_samples_jsonl(json.dumps(row))

    legacy = {"TimeStamp": "2025-01-01T00:00:00Z", "Type": "x", "Connected": 0, "Error": "e"}
    with pytest.raises(CoalesceError, match="line 1"):
        load_samples_jsonl(json.dumps(legacy))


def test_cli_coalesce_missing_file_exits_1(tmp_path, capsys) -> None:
    import main

    assert main.main(["--coalesce", str(tmp_path / "absent.jsonl")]) == 1
    err = capsys.readouterr().err
    assert "❌ Fatal" in err
    assert "absent.jsonl" in err


def test_cli_coalesce_non_utf8_file_exits_1(tmp_path, capsys) -> None:
    import main

    path = tmp_path / "samples.jsonl"
    path.write_bytes(b"\xff\xfe\x00not utf-8")

    assert main.main(["--coalesce", str(path)]) == 1
    assert "❌ Fatal" in capsys.readouterr().err

import json

from doc_builder import Piece, build_doc_streams, build_ole

import msdoc2text
from msdoc2text.cli import main
from msdoc2text.extractors.serialization import serialize_extraction


def _write_doc(tmp_path, name: str = "sample.doc"):
    pieces = [Piece.text("First paragraph\r"), Piece.text("Zweiter Absatz – Ende\r", False)]
    path = tmp_path / name
    path.write_bytes(build_ole(build_doc_streams(pieces, ccp_text=38)))
    return path


def test_cli_outputs_full_text_by_default(tmp_path, capsys) -> None:
    path = _write_doc(tmp_path)
    expected = next(msdoc2text.read_file(path)).get_full_text()

    exit_code = main([str(path)])
    captured = capsys.readouterr()

    assert exit_code == 0
    assert captured.out == f"{expected}\n"
    assert "Zweiter Absatz – Ende" in captured.out


def test_cli_outputs_json_with_flag(tmp_path, capsys) -> None:
    path = _write_doc(tmp_path)
    expected = serialize_extraction(next(msdoc2text.read_file(path)))

    exit_code = main(["--json", str(path)])
    captured = capsys.readouterr()

    assert exit_code == 0
    payload = json.loads(captured.out.strip())
    assert payload == expected
    assert payload["_type"] == "DocContent"


def test_cli_warns_on_unsupported_argument(tmp_path, capsys) -> None:
    path = _write_doc(tmp_path)
    exit_code = main(["--json", "--not-a-real-flag", str(path)])
    captured = capsys.readouterr()

    assert exit_code == 1
    assert "warning: unsupported arguments" in captured.err


def test_cli_reports_unsupported_file_type(tmp_path, capsys) -> None:
    path = _write_doc(tmp_path, name="sample.pdf")
    exit_code = main([str(path)])
    captured = capsys.readouterr()

    assert exit_code == 1
    assert "not supported" in captured.err


def test_cli_reports_broken_document(tmp_path, capsys) -> None:
    path = tmp_path / "broken.doc"
    path.write_bytes(b"\x00" * 2048)

    exit_code = main([str(path)])
    captured = capsys.readouterr()

    assert exit_code == 1
    assert captured.err.startswith("msdoc2text: ")
    assert captured.out == ""

import json

from genomicdao.cli import main
from genomicdao.keys import KeyMaterial
from genomicdao.scoring import markers_to_bytes


def _keyfile(tmp_path):
    path = tmp_path / "custody.json"
    assert main(["keygen", "-o", str(path)]) == 0
    return path


def test_keygen_and_address(tmp_path, capsys):
    path = _keyfile(tmp_path)
    capsys.readouterr()
    assert main(["address", "-k", str(path)]) == 0
    assert capsys.readouterr().out.strip() == KeyMaterial.load(str(path)).address


def test_seal_open_round_trip(tmp_path):
    key = _keyfile(tmp_path)
    raw = tmp_path / "markers.bin"
    raw.write_bytes(markers_to_bytes([0.5, 0.25, 0.0, 1.0]))
    sealed = tmp_path / "markers.sealed"
    opened = tmp_path / "markers.out"

    assert main(["seal", "-k", str(key), "-i", str(raw), "-o", str(sealed)]) == 0
    assert main(["open", "-k", str(key), "-i", str(sealed), "-o", str(opened)]) == 0
    assert opened.read_bytes() == raw.read_bytes()


def test_seal_rejects_partial_marker(tmp_path, capsys):
    key = _keyfile(tmp_path)
    raw = tmp_path / "bad.bin"
    raw.write_bytes(b"\x00" * 9)
    assert main(["seal", "-k", str(key), "-i", str(raw), "-o", str(tmp_path / "x")]) == 1
    assert "InvalidMarkerLength" in capsys.readouterr().err


def test_score(tmp_path, capsys):
    raw = tmp_path / "markers.bin"
    raw.write_bytes(markers_to_bytes([1.0, 1.0, 1.0, 1.0]))
    assert main(["score", "-i", str(raw)]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["risk_level"] == 4
    assert out["label"] == "HIGH"


def test_sign_and_verify(tmp_path, capsys):
    key = _keyfile(tmp_path)
    sealed = tmp_path / "blob.sealed"
    sealed.write_bytes(b"\x01" * 80)
    capsys.readouterr()

    assert main(["sign", "-k", str(key), "-i", str(sealed)]) == 0
    signed = json.loads(capsys.readouterr().out)

    args = ["verify", "-i", str(sealed), "-s", signed["signature"]]
    assert main(args + ["-a", signed["address"]]) == 0
    assert main(args + ["-a", KeyMaterial.generate().address]) == 1


def test_missing_file(tmp_path, capsys):
    assert main(["score", "-i", str(tmp_path / "absent.bin")]) == 1
    assert capsys.readouterr().err


def test_no_command(capsys):
    assert main([]) == 1

#!/usr/bin/env python3
"""
GenomicDAO Custody Command Line Interface

Usage:
    genomicdao keygen [--output <file>]
    genomicdao address --key <file>
    genomicdao seal --key <file> --input <file> --output <file>
    genomicdao open --key <file> --input <file> --output <file>
    genomicdao score --input <file>
    genomicdao sign --key <file> --input <file>
    genomicdao verify --input <file> --signature <hex> --address <addr>
    genomicdao session <session_id>
    genomicdao serve [--host <host>] [--port <port>]
"""

import argparse
import json
import sys

from .errors import CustodyError
from .keys import KeyMaterial
from .util import strip_0x


def read_bytes(path: str) -> bytes:
    with open(path, 'rb') as f:
        return f.read()


def write_bytes(data: bytes, path: str):
    with open(path, 'wb') as f:
        f.write(data)


def cmd_keygen(args):
    """Generate a secp256k1 key pair."""
    km = KeyMaterial.generate()
    if args.output:
        km.save(args.output)
        print(f"Key saved to: {args.output}")
    else:
        print(json.dumps({
            "address": km.address,
            "public_key_hex": km.public_key.hex(),
            "private_key_hex": km.private_key_hex(),
        }, indent=2))
    print(f"\nAddress: {km.address}", file=sys.stderr)
    return 0


def cmd_address(args):
    print(KeyMaterial.load(args.key).address)
    return 0


def cmd_seal(args):
    """Seal a raw marker file into an envelope."""
    from .envelope import seal
    from .scoring import markers_from_bytes

    payload = read_bytes(args.input)
    markers_from_bytes(payload)  # whole markers only
    sealed = seal(payload, KeyMaterial.load(args.key))
    write_bytes(sealed, args.output)
    print(f"Sealed {len(payload)} bytes -> {args.output} ({len(sealed)} bytes)", file=sys.stderr)
    return 0


def cmd_open(args):
    from .envelope import open_envelope

    plaintext = open_envelope(read_bytes(args.input), KeyMaterial.load(args.key))
    write_bytes(plaintext, args.output)
    print(f"Opened {args.input} -> {args.output} ({len(plaintext)} bytes)", file=sys.stderr)
    return 0


def cmd_score(args):
    """Print the risk level of a raw marker file."""
    from .scoring import markers_from_bytes, score_payload, weighted_sum

    payload = read_bytes(args.input)
    level = score_payload(payload)
    print(json.dumps({
        "markers": len(payload) // 8,
        "weighted_sum": weighted_sum(markers_from_bytes(payload)),
        "risk_level": int(level),
        "label": level.name,
    }, indent=2))
    return 0


def cmd_sign(args):
    from .signing import sign_artifact

    km = KeyMaterial.load(args.key)
    digest, signature = sign_artifact(read_bytes(args.input), km)
    print(json.dumps({
        "content_hash": "0x" + digest.hex(),
        "signature": "0x" + signature.hex(),
        "address": km.address,
    }, indent=2))
    return 0


def cmd_verify(args):
    """Check a detached signature over a sealed file."""
    from .signing import content_hash, recover_signer

    digest = content_hash(read_bytes(args.input))
    try:
        signature = bytes.fromhex(strip_0x(args.signature))
    except ValueError:
        print("✗ INVALID: signature is not hex", file=sys.stderr)
        return 1

    signer = recover_signer(digest, signature)
    if signer.lower() == args.address.lower():
        print(f"✓ VALID: signed by {signer}")
        return 0
    print(f"✗ INVALID: signed by {signer}, expected {args.address}")
    return 1


def cmd_session(args):
    """Look up an upload session on the ledger. No signing key is needed."""
    from .config import get_ledger_client
    from .ledger import LedgerCommitOrchestrator

    orchestrator = LedgerCommitOrchestrator(get_ledger_client(read_only=True))
    session = orchestrator.get_session(args.session_id)
    if not session.exists:
        print(f"✗ session {args.session_id} not found", file=sys.stderr)
        return 1
    print(json.dumps(session.to_dict(), indent=2))
    return 0


def cmd_serve(args):
    import uvicorn

    uvicorn.run("genomicdao.api:app", host=args.host, port=args.port)
    return 0


COMMANDS = {
    "keygen": cmd_keygen,
    "address": cmd_address,
    "seal": cmd_seal,
    "open": cmd_open,
    "score": cmd_score,
    "sign": cmd_sign,
    "verify": cmd_verify,
    "session": cmd_session,
    "serve": cmd_serve,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="genomicdao",
        description="GenomicDAO custody CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  genomicdao keygen -o keys/custody.json
  genomicdao seal -k keys/custody.json -i markers.bin -o markers.sealed
  genomicdao score -i markers.bin
  genomicdao sign -k keys/custody.json -i markers.sealed
  genomicdao session 42
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    keygen_parser = subparsers.add_parser("keygen", help="Generate key pair")
    keygen_parser.add_argument("-o", "--output", help="Output key file")

    address_parser = subparsers.add_parser("address", help="Print the account address of a key file")
    address_parser.add_argument("-k", "--key", required=True, help="Key file")

    seal_parser = subparsers.add_parser("seal", help="Seal a marker file")
    seal_parser.add_argument("-k", "--key", required=True, help="Key file")
    seal_parser.add_argument("-i", "--input", required=True, help="Raw marker file")
    seal_parser.add_argument("-o", "--output", required=True, help="Sealed output file")

    open_parser = subparsers.add_parser("open", help="Open a sealed file")
    open_parser.add_argument("-k", "--key", required=True, help="Key file")
    open_parser.add_argument("-i", "--input", required=True, help="Sealed file")
    open_parser.add_argument("-o", "--output", required=True, help="Plaintext output file")

    score_parser = subparsers.add_parser("score", help="Score a marker file")
    score_parser.add_argument("-i", "--input", required=True, help="Raw marker file")

    sign_parser = subparsers.add_parser("sign", help="Sign a sealed file")
    sign_parser.add_argument("-k", "--key", required=True, help="Key file (private key required)")
    sign_parser.add_argument("-i", "--input", required=True, help="Sealed file")

    verify_parser = subparsers.add_parser("verify", help="Verify a detached signature")
    verify_parser.add_argument("-i", "--input", required=True, help="Sealed file")
    verify_parser.add_argument("-s", "--signature", required=True, help="Signature hex")
    verify_parser.add_argument("-a", "--address", required=True, help="Expected signer address")

    session_parser = subparsers.add_parser("session", help="Look up an upload session (read-only, PRIVATE_KEY not required)")
    session_parser.add_argument("session_id", help="Decimal session id")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP service")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    try:
        return handler(args)
    except CustodyError as e:
        print(f"✗ {type(e).__name__}: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

"""zkretctl: command-line driver for the Secret Santa protocol.

Usage:
    zkretctl keygen
    zkretctl enter
    zkretctl choice-list
    zkretctl choice-make <hex public key>
    zkretctl check-my-santa
    zkretctl reveal "<text>"
    zkretctl check-my-santee
    zkretctl status

Every participant runs their own copy against a shared record store directory.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from zkret.config import LOG_LEVELS, Settings, load_settings
from zkret.crypto import KeyPair, X25519KeyExchange
from zkret.engine import PhasePolicy, ProtocolEngine
from zkret.errors import SerializationError, ZkretError
from zkret.keyfile import load_key_exchange, load_keypair, save_key_exchange, save_keypair
from zkret.proofs import SignatureProofProvider
from zkret.storage import FileRecordStore

logger = logging.getLogger(__name__)


def _make_engine(args: argparse.Namespace) -> ProtocolEngine:
    settings: Settings = args.settings
    store = FileRecordStore(
        args.store,
        confirm_attempts=settings.confirm_attempts,
        confirm_interval=settings.confirm_interval,
    )
    return ProtocolEngine(
        store,
        SignatureProofProvider(),
        X25519KeyExchange(),
        policy=PhasePolicy(settings.phase_policy),
    )


def cmd_keygen(args: argparse.Namespace) -> int:
    if args.passphrase:
        keypair = KeyPair.from_password(args.passphrase)
    else:
        keypair = KeyPair.generate()
    save_keypair(keypair, args.keypair_file)
    print(f"Generated new keypair and saved to: {args.keypair_file}")
    print(f"Public key: {keypair.public_key.hex()}")
    return 0


def cmd_enter(args: argparse.Namespace) -> int:
    keypair = load_keypair(args.keypair_file)
    engine = _make_engine(args)
    record = engine.enter(keypair)
    print("Successfully entered the Secret Santa protocol!")
    print(f"Record: {record.content_address}")
    return 0


def cmd_choice_list(args: argparse.Namespace) -> int:
    engine = _make_engine(args)
    own_key = None
    if Path(args.keypair_file).exists():
        own_key = load_keypair(args.keypair_file).public_key
    choices = [pk for pk in engine.available_choices() if pk != own_key]
    print("Available public keys to choose from:")
    for i, pk in enumerate(choices, 1):
        print(f"  {i}: {pk.hex()}")
    return 0


def cmd_choice_make(args: argparse.Namespace) -> int:
    keypair = load_keypair(args.keypair_file)
    try:
        chosen = bytes.fromhex(args.chosen_public_key)
    except ValueError as e:
        raise SerializationError(f"invalid public key hex: {e}")
    engine = _make_engine(args)
    kx_pair = engine.key_exchange.generate()
    engine.choice(keypair, chosen, kx_pair)
    # The key-exchange secret is needed again for reveal and check-my-santee
    save_key_exchange(kx_pair, args.keypair_file, engine.key_exchange)
    print(f"Successfully chose participant: {args.chosen_public_key}")
    return 0


def cmd_check_my_santa(args: argparse.Namespace) -> int:
    keypair = load_keypair(args.keypair_file)
    engine = _make_engine(args)
    if engine.has_santa(keypair.public_key):
        print("You have a Secret Santa! They will contact you once you reveal your info.")
    else:
        print("You don't have a Secret Santa yet. Wait for someone to choose you.")
    return 0


def cmd_reveal(args: argparse.Namespace) -> int:
    keypair = load_keypair(args.keypair_file)
    engine = _make_engine(args)
    kx_pair = load_key_exchange(args.keypair_file, engine.key_exchange)
    santa_kx = engine.santa_key_exchange_public_key(keypair.public_key)
    engine.reveal(keypair, args.info_plaintext, kx_pair, santa_kx)
    print("Successfully revealed your information to your Secret Santa!")
    return 0


def cmd_check_my_santee(args: argparse.Namespace) -> int:
    keypair = load_keypair(args.keypair_file)
    engine = _make_engine(args)
    kx_pair = load_key_exchange(args.keypair_file, engine.key_exchange)
    info = engine.santee_revealed_info(keypair, kx_pair)
    if info is None:
        print("Your santee hasn't revealed their information yet.")
    else:
        print("Your santee has revealed their information:")
        print(f"  {info}")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    engine = _make_engine(args)
    status = engine.status()
    print(f"Current protocol phase: {status['phase']}")
    print(f"Entered participants: {status['entered']}")
    print(f"Chosen participants: {status['chosen']}")
    print(f"Revealed participants: {status['revealed']}")
    print(f"Available participants: {status['available']}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zkretctl",
        description="ZKret Santa: trustless Secret Santa over an append-only record store",
    )
    parser.add_argument("-k", "--keypair-file", type=Path, default=None,
                        help="path to keypair file (default: $ZKRET_KEYPAIR_FILE or key.zkret)")
    parser.add_argument("--store", type=Path, default=None,
                        help="record store directory (default: $ZKRET_STORE_DIR or .zkret-store)")
    parser.add_argument("--log-level", choices=LOG_LEVELS, default=None,
                        help="logging level (default: $ZKRET_LOG_LEVEL or WARNING)")

    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("keygen", help="Generate a new keypair")
    p.add_argument("--passphrase", default=None,
                   help="derive the keypair deterministically from a passphrase")
    p.set_defaults(func=cmd_keygen)

    p = sub.add_parser("enter", help="Enter the Secret Santa protocol")
    p.set_defaults(func=cmd_enter)

    p = sub.add_parser("choice-list", help="List available public keys for choosing")
    p.set_defaults(func=cmd_choice_list)

    p = sub.add_parser("choice-make", help="Choose a participant")
    p.add_argument("chosen_public_key", help="public key of the chosen participant (hex)")
    p.set_defaults(func=cmd_choice_make)

    p = sub.add_parser("check-my-santa", help="Check if someone chose you")
    p.set_defaults(func=cmd_check_my_santa)

    p = sub.add_parser("reveal", help="Reveal your information to your Secret Santa")
    p.add_argument("info_plaintext", help="information to reveal")
    p.set_defaults(func=cmd_reveal)

    p = sub.add_parser("check-my-santee", help="Check if your santee has revealed their info")
    p.set_defaults(func=cmd_check_my_santee)

    p = sub.add_parser("status", help="Display protocol status")
    p.set_defaults(func=cmd_status)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        settings = load_settings()
    except ValueError as e:
        print(f"ConfigError: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=args.log_level or settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args.settings = settings
    args.keypair_file = args.keypair_file or settings.keypair_file
    args.store = args.store or settings.store_dir

    try:
        return args.func(args)
    except ZkretError as e:
        logger.debug("%s failed", args.command, exc_info=True)
        print(e.render(), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

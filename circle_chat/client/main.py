"""
Command line entry point for circle-chat.

compose: sign a message as its author and package it for one recipient.
open:    verify and decrypt wire records addressed to you.
"""
import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from circle_chat.common import crypto
from circle_chat.common.errors import ChatError
from circle_chat.common.messages import construct_message, open_wire_record, package_for_transmission
from circle_chat.common.protocol import read_records, write_records

logger = logging.getLogger("circle_chat")


def _read_private(path: str):
    password = os.environ.get("CIRCLE_CHAT_KEY_PASSWORD")
    return crypto.load_private_pem(Path(path).read_bytes(),
                                   password.encode() if password else None)


def _read_public(path: str):
    return crypto.load_public_pem(Path(path).read_bytes())


def compose(args) -> int:
    sender_key = _read_private(args.key)
    recipient = _read_public(args.to)
    attachments = [Path(p).read_bytes() for p in args.attach]

    message = construct_message(
        channel_id=args.channel,
        is_response=args.reply_to is not None,
        is_response_to=args.reply_to,
        is_broadcast=args.broadcast,
        body=args.body,
        attachments=attachments,
        author=args.author,
        private_key=sender_key,
    )
    record = package_for_transmission(message, recipient, sender_key)
    write_records(sys.stdout, [record])
    return 0


def open_records(args) -> int:
    recipient_key = _read_private(args.key)
    sender = _read_public(args.sender)

    stream = open(args.input, encoding="utf-8") if args.input != "-" else sys.stdin
    try:
        for record in read_records(stream):
            msg = open_wire_record(record, sender, recipient_key)
            print(json.dumps({
                "message_id": msg.message_id,
                "channel_id": msg.channel_id,
                "is_response_to": msg.is_response_to,
                "is_broadcast": msg.is_broadcast,
                "author": msg.author,
                "timestamp": msg.timestamp,
                "body": msg.body,
                "attachments": [a.hex() for a in msg.attachments],
            }, ensure_ascii=False))
    finally:
        if stream is not sys.stdin:
            stream.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="circle-chat", description="Signed, encrypted chat messages")
    ap.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = ap.add_subparsers(dest="command", required=True)

    c = sub.add_parser("compose", help="Sign and encrypt a message for one recipient")
    c.add_argument("body", help="Message text")
    c.add_argument("--author", required=True, help="Author's canonical name")
    c.add_argument("--channel", type=int, required=True, help="Target channel id")
    c.add_argument("--reply-to", type=int, default=None, help="Id of the message being answered")
    c.add_argument("--broadcast", action="store_true", help="Address the whole channel")
    c.add_argument("--attach", action="append", default=[], metavar="FILE", help="Attach a file (repeatable)")
    c.add_argument("--key", default=os.environ.get("CIRCLE_CHAT_SENDER_KEY"),
                   help="Author's private key PEM (default: $CIRCLE_CHAT_SENDER_KEY)")
    c.add_argument("--to", default=os.environ.get("CIRCLE_CHAT_RECIPIENT_PUB"),
                   help="Recipient's public key PEM (default: $CIRCLE_CHAT_RECIPIENT_PUB)")
    c.set_defaults(func=compose)

    o = sub.add_parser("open", help="Verify and decrypt wire records")
    o.add_argument("input", nargs="?", default="-", help="File of wire records, one per line (default: stdin)")
    o.add_argument("--key", default=os.environ.get("CIRCLE_CHAT_RECIPIENT_KEY"),
                   help="Recipient's private key PEM (default: $CIRCLE_CHAT_RECIPIENT_KEY)")
    o.add_argument("--from", dest="sender", default=os.environ.get("CIRCLE_CHAT_SENDER_PUB"),
                   help="Sender's public key PEM (default: $CIRCLE_CHAT_SENDER_PUB)")
    o.set_defaults(func=open_records)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    if args.command == "compose":
        required = {"--key": args.key, "--to": args.to}
    else:
        required = {"--key": args.key, "--from": args.sender}
    missing = [flag for flag, value in required.items() if not value]
    if missing:
        ap.error(f"missing {', '.join(missing)} (or the matching environment variable)")

    try:
        return args.func(args)
    except (ChatError, ValueError, TypeError, OSError) as e:
        logger.debug("command failed", exc_info=True)
        print(f"circle-chat: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

"""Command line front end.

Usage:
  cos-upload upload path/to/local/file uploads/user_123/file --meta user-id=123
  cos-upload head uploads/user_123/file
  cos-upload delete uploads/user_123/file

Credentials and bucket come from TENCENT_SECRET_ID, TENCENT_SECRET_KEY,
TENCENT_COS_REGION and TENCENT_COS_BUCKET (a .env file is honoured).
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Sequence

from cos_upload.common.config import Settings
from cos_upload.common.logging import setup_logging
from cos_upload.infra.storage.client import (
    ConfigError,
    IncompleteUploadError,
    ObjectHead,
    StorageError,
)
from cos_upload.services.uploader import Uploader

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def _parse_meta(values: Sequence[str] | None) -> dict[str, str]:
    metadata: dict[str, str] = {}
    for item in values or ():
        if "=" not in item:
            raise argparse.ArgumentTypeError(f"metadata must be KEY=VALUE, got {item!r}")
        key, value = item.split("=", 1)
        key = key.strip()
        if key.lower() in (seen.lower() for seen in metadata):
            raise argparse.ArgumentTypeError(f"metadata key {key!r} given more than once")
        metadata[key] = value
    return metadata


def _head_payload(head: ObjectHead) -> dict[str, object]:
    return {
        "size_bytes": head.size_bytes,
        "etag": head.etag,
        "content_type": head.content_type,
        "last_modified": head.last_modified.isoformat() if head.last_modified else None,
        "metadata": head.metadata,
        "headers": head.headers,
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cos-upload", description="Upload files to a COS bucket"
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Log level for cos_upload loggers (default: WARNING)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    upload = commands.add_parser("upload", help="Upload a local file")
    upload.add_argument("path", help="Local file to upload")
    upload.add_argument("key", help="Destination object key")
    upload.add_argument(
        "--meta",
        action="append",
        metavar="KEY=VALUE",
        help="User metadata entry; may be repeated",
    )
    upload.add_argument("--content-type", default=None, help="Override the MIME type")

    head = commands.add_parser("head", help="Print object metadata as JSON")
    head.add_argument("key")

    delete = commands.add_parser("delete", help="Delete an object")
    delete.add_argument("key")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        metadata = _parse_meta(getattr(args, "meta", None))
    except argparse.ArgumentTypeError as exc:
        parser.error(str(exc))

    try:
        settings = Settings.from_environment()
        setup_logging(fmt=settings.LOG_FORMAT, level=args.log_level.upper())
        uploader = Uploader(settings)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_USAGE

    try:
        if args.command == "upload":
            url = uploader.upload_sync(
                args.path, args.key, metadata, content_type=args.content_type
            )
            print(url)
        elif args.command == "head":
            head = uploader.head_sync(args.key)
            print(json.dumps(_head_payload(head), ensure_ascii=False, indent=2))
        else:
            uploader.delete_sync(args.key)
            print(f"Deleted {args.key}")
    except IncompleteUploadError as exc:
        print(f"Upload failed: {exc}", file=sys.stderr)
        if exc.requires_manual_cleanup:
            print(
                f"Multipart upload {exc.upload_id} could not be aborted; "
                "remove it manually",
                file=sys.stderr,
            )
        return EXIT_FAILED
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_USAGE
    except (StorageError, ValueError) as exc:
        print(f"{args.command} failed: {exc}", file=sys.stderr)
        return EXIT_FAILED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())

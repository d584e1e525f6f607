from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Sequence

from cryptography.hazmat.primitives import serialization

from userservice.application.services.user_service import ServiceError, Status, UserService
from userservice.repositories.errors import RepositoryError


def _build_service() -> UserService:
    # Lazy imports keep --help usable without DSN configured
    from userservice.config.settings import build_settings
    from userservice.logging_config import get_logger
    from userservice.repositories.factory import build_repository

    get_logger()
    settings = build_settings()
    return UserService(build_repository(settings), timeout=settings.storage_timeout)


def read_public_key(path: str) -> bytes:
    """Return DER SubjectPublicKeyInfo bytes from a PEM or DER file."""
    data = Path(path).read_bytes()
    if data.lstrip().startswith(b"-----BEGIN"):
        key = serialization.load_pem_public_key(data)
        return key.public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    return data


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Manage stored user accounts")
    sub = p.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="Register a new user")
    create.add_argument("--email", required=True)
    create.add_argument("--name", required=True)
    create.add_argument("--public-key-file", required=True, help="PEM or DER public key")
    create.add_argument("--wrapped-private-key-hex", required=True)
    create.add_argument("--wrapped-master-key-hex", required=True)

    get = sub.add_parser("get", help="Fetch a user by email or public key")
    g = get.add_mutually_exclusive_group(required=True)
    g.add_argument("--email")
    g.add_argument("--public-key-file", help="PEM or DER public key")

    get_pk = sub.add_parser("get-pk", help="Fetch only the public key of a user")
    get_pk.add_argument("--email", required=True)

    delete = sub.add_parser("delete", help="Delete a user by email")
    delete.add_argument("--email", required=True)
    return p


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == "create":
            public_key = read_public_key(args.public_key_file)
            wrapped_private = bytes.fromhex(args.wrapped_private_key_hex)
            wrapped_master = bytes.fromhex(args.wrapped_master_key_hex)
        elif args.command == "get" and args.public_key_file:
            public_key = read_public_key(args.public_key_file)
    except (OSError, ValueError) as exc:
        print(json.dumps({"error": str(exc), "status": "INVALID_ARGUMENT"}), file=sys.stderr)
        return 2

    try:
        svc = _build_service()
    except (RuntimeError, RepositoryError) as exc:
        # Missing configuration or unreachable storage
        print(json.dumps({"error": str(exc), "status": Status.INTERNAL.value}), file=sys.stderr)
        return 1

    try:
        if args.command == "create":
            out: dict[str, object] = svc.create_user(
                args.email, args.name, public_key, wrapped_private, wrapped_master
            ).to_dict()
        elif args.command == "get":
            if args.email:
                out = svc.get_user_by_email(args.email).to_dict()
            else:
                out = svc.get_user_by_pk(public_key).to_dict()
        elif args.command == "get-pk":
            pk = svc.get_user_pk_by_email(args.email)
            out = {"email": pk.email, "public_key": pk.public_key.hex()}
        else:
            svc.delete_user_by_email(args.email)
            out = {"deleted": args.email}
    except ServiceError as exc:
        print(json.dumps({"error": str(exc), "status": exc.status.value}), file=sys.stderr)
        return 1

    print(json.dumps(out))
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

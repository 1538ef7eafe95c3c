#!/usr/bin/env python3
"""
Change the role of a guest identity (ban, unban, promote to admin) or show it.

Identities are looked up by client token. Run from project root with
DATABASE_URL set:
  python scripts/set_identity_role.py snip-1234... show
  python scripts/set_identity_role.py snip-1234... banned --reason "scripted abuse"
  python scripts/set_identity_role.py snip-1234... guest
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv
load_dotenv(project_root / ".env")
load_dotenv(project_root / ".env.local")

from guest_gateway.core.role_limits import resolve_role_policy
from guest_gateway.db.session import SessionLocal
from guest_gateway.models import ClientIdentity, Role
from guest_gateway.services.usage_tracker import get_identity_usage, usage_today


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("client_token")
    parser.add_argument("role", help="role name (banned, guest, admin, ...) or 'show'")
    parser.add_argument("--reason", help="stored as ban_reason when banning")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    if SessionLocal is None:
        print("ERROR: DATABASE_URL not set. Add it to .env or export it.")
        return 1

    sess = SessionLocal()
    try:
        identity = sess.query(ClientIdentity).filter(ClientIdentity.client_token == args.client_token).first()
        if identity is None:
            print(f"No identity with client token {args.client_token!r}")
            return 1

        if args.role != "show":
            role = sess.query(Role).filter(Role.name == args.role).first()
            if role is None:
                names = ", ".join(name for (name,) in sess.query(Role.name).order_by(Role.id))
                print(f"Unknown role {args.role!r}. Available: {names}")
                return 1
            identity.role_id = role.id
            identity.ban_reason = args.reason if role.name == "banned" else None
            sess.commit()
            sess.refresh(identity)
            print(f"Updated {args.client_token[:8]}... to role {role.name}")

        policy = resolve_role_policy(identity.role)
        usage = get_identity_usage(sess, identity.id, usage_today())
        print(f"  id:               {identity.id}")
        print(f"  device signature: {identity.device_signature}")
        print(f"  role:             {policy.name} (daily {policy.daily_limit}, velocity {policy.velocity_limit})")
        print(f"  usage today:      {usage}")
        if identity.ban_reason:
            print(f"  ban reason:       {identity.ban_reason}")
        return 0
    except Exception as e:
        sess.rollback()
        print(f"ERROR: {e}")
        raise
    finally:
        sess.close()


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
import argparse
import json
import os
import time
from typing import List

import firebase_admin
from firebase_admin import credentials, firestore

from study_generator.repositories import users_repo
from study_generator.services import quota_service


def init_firestore():
    if os.path.exists("firebase-credentials.json"):
        cred = credentials.Certificate("firebase-credentials.json")
    else:
        raw = (os.getenv("FIREBASE_CREDENTIALS", "") or "").strip()
        if not raw:
            raise RuntimeError("Missing firebase-credentials.json and FIREBASE_CREDENTIALS env var.")
        cred = credentials.Certificate(json.loads(raw))
    if not firebase_admin._apps:
        firebase_admin.initialize_app(cred)
    return firestore.client()


def build_promotion_updates(profile, now_ts):
    updates = {"role": "super_admin"}
    if profile.get("verification_status") != "approved":
        updates["verification_status"] = "approved"
        updates["approved_at"] = now_ts
        updates["approved_by"] = "promote_super_admin"
    if profile.get("is_blocked"):
        updates["is_blocked"] = False
    if not profile.get("badge"):
        updates["badge"] = quota_service.PLAN_BADGES[quota_service.sanitize_plan(profile.get("plan"))]
    return updates


def promote(db, email: str, apply_changes: bool) -> List[str]:
    safe_email = email.strip().lower()
    promoted = []
    for doc in users_repo.list_by_email(db, safe_email):
        profile = doc.to_dict() or {}
        updates = build_promotion_updates(profile, time.time())
        promoted.append(doc.id)
        print(f"  {doc.id}: {profile.get('role', 'user')} -> super_admin {sorted(updates)}")
        if apply_changes:
            users_repo.update_doc(db, doc.id, updates)
    return promoted


def main():
    parser = argparse.ArgumentParser(description="Grant the super_admin role to a registered user by email.")
    parser.add_argument("email", help="Email address of the registered user.")
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Apply changes. Without this flag, the script runs in dry-run mode.",
    )
    args = parser.parse_args()

    db = init_firestore()
    promoted = promote(db, args.email, apply_changes=args.apply)
    mode = "APPLY" if args.apply else "DRY-RUN"
    print(f"[{mode}] matched_profiles={len(promoted)} email={args.email.strip().lower()}")
    if not promoted:
        print("No profile found. The user must sign in once before being promoted.")
    elif not args.apply:
        print("No changes were written. Re-run with --apply to persist.")


if __name__ == "__main__":
    main()

import argparse
import asyncio

from fastapi import HTTPException

from icc_checker import seeds as app_seeds
from icc_checker.core import security
from icc_checker.db.session import SessionLocal
from icc_checker.services import auth as auth_service
from icc_checker.services import stores as stores_service


def _normalize_email(email: str) -> str:
    email_norm = (email or "").strip().lower()
    if not email_norm or "@" not in email_norm:
        raise SystemExit("Invalid email")
    return email_norm


async def bootstrap_admin(*, email: str, password: str) -> None:
    email_norm = _normalize_email(email)
    if len(password) < 8:
        print("WARNING: creating an admin with a password shorter than 8 characters; change it immediately.")

    async with SessionLocal() as session:
        user = await auth_service.get_user_by_email(session, email_norm)
        if user is None:
            user = await auth_service.create_user(session, email=email_norm, password=password, is_admin=True)
            print(f"Admin created: {user.email} id={user.id}")
            return
        user.hashed_password = security.hash_password(password)
        user.is_admin = True
        await session.commit()
        print(f"Admin promoted: {user.email} id={user.id}")


async def add_store(*, name: str, code: str) -> None:
    async with SessionLocal() as session:
        try:
            store = await stores_service.create_store(session, name=name, code=code)
        except HTTPException as exc:
            raise SystemExit(str(exc.detail)) from None
        print(f"Store created: {store.name} id={store.id}")


async def _seed_checklist() -> None:
    async with SessionLocal() as session:
        created = await app_seeds.seed_checklist(session)
    print(f"Checklist items created: {created}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="ICC checker administration utilities")
    subparsers = parser.add_subparsers(dest="command")

    admin = subparsers.add_parser("bootstrap-admin", help="Create an admin account or promote an existing one")
    admin.add_argument("--email", required=True, help="Admin email")
    admin.add_argument("--password", required=True, help="Admin password")

    subparsers.add_parser("seed-checklist", help="Load the default checklist items into the database")

    store = subparsers.add_parser("add-store", help="Create a store with its access code")
    store.add_argument("--name", required=True, help="Store name")
    store.add_argument("--code", required=True, help="Store access code")
    return parser


def _run_cli_command(args: argparse.Namespace) -> bool:
    if args.command == "bootstrap-admin":
        asyncio.run(bootstrap_admin(email=args.email, password=args.password))
        return True

    if args.command == "seed-checklist":
        asyncio.run(_seed_checklist())
        return True

    if args.command == "add-store":
        asyncio.run(add_store(name=args.name, code=args.code))
        return True

    return False


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not _run_cli_command(args):
        parser.print_help()


if __name__ == "__main__":
    main()

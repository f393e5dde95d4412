"""Create a school and its owner account from the command line."""
import argparse
import getpass
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from quranakh.api.v1.auth import hash_password
from quranakh.db import Base, engine, session_scope
from quranakh.errors import EngineError
from quranakh.migrations import run_migrations
from quranakh.services.people import PeopleService


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("school_name")
    parser.add_argument("username")
    parser.add_argument("--name", default=None, help="Owner display name (defaults to username)")
    args = parser.parse_args(argv)

    password = getpass.getpass("Owner password: ")
    if len(password) < 6:
        print("Password must be at least 6 characters", file=sys.stderr)
        return 1

    Base.metadata.create_all(bind=engine)
    run_migrations(engine)

    try:
        with session_scope() as db:
            owner = PeopleService().register_school(
                db,
                school_name=args.school_name,
                username=args.username,
                password_hash=hash_password(password),
                name=args.name or args.username,
            )
            print(f"Created school {owner.school_id} with owner '{owner.username}' (id={owner.id})")
    except EngineError as exc:
        print(exc.message, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

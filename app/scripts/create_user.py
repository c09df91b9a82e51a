"""
Create a user (e.g. the first admin; registration always creates role 'user'). Run from project root:
  python -m app.scripts.create_user USERNAME EMAIL PASSWORD [--role admin] [--first-name F] [--last-name L]
Example:
  python -m app.scripts.create_user admin admin@example.com your-secure-password --role admin
"""
import argparse
import sys

from pydantic import ValidationError as PydanticValidationError

from app.core.database import session_scope
from app.core.errors import DuplicateIdentity
from app.models.user import UserRole
from app.schemas.auth import RegisterRequest
from app.services.users import register_user


def main() -> int:
    parser = argparse.ArgumentParser(description="Create a TMS user account.")
    parser.add_argument("username", help="Username (3-30 letters, digits, underscore)")
    parser.add_argument("email", help="Email address")
    parser.add_argument("password", help="Password (8-128 chars)")
    parser.add_argument("--role", default=UserRole.USER.value, choices=[r.value for r in UserRole])
    parser.add_argument("--first-name", default="Admin")
    parser.add_argument("--last-name", default="User")
    args = parser.parse_args()

    try:
        body = RegisterRequest(
            username=args.username.strip(),
            email=args.email,
            password=args.password,
            first_name=args.first_name,
            last_name=args.last_name,
        )
    except PydanticValidationError as e:
        for err in e.errors():
            field = ".".join(str(p) for p in err["loc"])
            print(f"{field}: {err['msg']}", file=sys.stderr)
        return 1

    try:
        with session_scope() as db:
            user = register_user(
                db,
                username=body.username,
                email=body.email,
                password=body.password,
                first_name=body.first_name,
                last_name=body.last_name,
                role=UserRole(args.role),
            )
            print(f"Created user '{user.username}' (id={user.id}) with role '{user.role.value}'.")
        return 0
    except DuplicateIdentity as e:
        print(e.message, file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

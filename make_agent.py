# make_agent.py
# Usage: python make_agent.py <userId> [--float 5000]
#        python make_agent.py <userId> --revoke

import argparse
from decimal import Decimal
from app import create_app
from extensions import db
from models import User, UserRole
from wallet.ledger import AccountLedger, settlement


def make_agent(user_id: int, opening_float: Decimal = Decimal("0"), revoke: bool = False):
    app = create_app()
    with app.app_context():
        user = db.session.get(User, user_id)
        if not user:
            raise SystemExit(f"No user with userId {user_id}.")

        if revoke:
            user.role = UserRole.USER.value
            db.session.commit()
            print(f"User {user_id} is no longer an agent.")
            return

        with settlement():
            user.role = UserRole.AGENT.value
            if opening_float > 0:
                AccountLedger.credit(user_id, agent_balance=opening_float)

        app.logger.info(f"User {user_id} promoted to agent with float {opening_float}")
        print(f"User {user_id} ({user.name}) is now an agent.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Promote a user to settlement agent")
    parser.add_argument("user_id", type=int)
    parser.add_argument("--float", dest="opening_float", type=Decimal, default=Decimal("0"))
    parser.add_argument("--revoke", action="store_true")
    args = parser.parse_args()
    make_agent(args.user_id, args.opening_float, args.revoke)

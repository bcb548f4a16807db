"""Storefront checkout management CLI.

Creates and drops the database schema and seeds reference data.

Usage:
    python src/manage.py setup-db   # Create all tables
    python src/manage.py drop-db    # Drop all tables
    python src/manage.py seed       # Add default shipping methods
    python src/manage.py seed --coupon WELCOME --fixed 100000
"""

import argparse
import sys

DEFAULT_SHIPPING_METHODS = [
    {"code": "post", "name": "Post", "price": 50_000, "estimated_days": 5, "sort_order": 1},
    {"code": "express", "name": "Express courier", "price": 150_000, "estimated_days": 2, "sort_order": 2},
    {"code": "pickup", "name": "In-store pickup", "price": 0, "estimated_days": 0, "sort_order": 3},
]


def _ordering():
    from ordering.domain import ordering

    ordering.init()
    return ordering


def setup_database():
    from ordering.utils.db import setup_db

    domain = _ordering()
    print("Creating ordering database schema...")
    setup_db(domain)
    print("Done.")


def drop_database():
    from ordering.utils.db import drop_db

    domain = _ordering()
    print("Dropping ordering database schema...")
    drop_db(domain)
    print("Done.")


def seed(coupon_code=None, fixed=None, percent=None, minimum=0):
    from ordering.coupon.coupon import DiscountType
    from ordering.coupon.management import DefineCoupon
    from ordering.shipping.shipping_method import DefineShippingMethod, ShippingMethod
    from protean.exceptions import ValidationError

    domain = _ordering()
    with domain.domain_context():
        repo = domain.repository_for(ShippingMethod)
        for method in DEFAULT_SHIPPING_METHODS:
            if repo.find_active(method["code"]) is not None:
                print(f"  shipping method {method['code']} already present")
                continue
            domain.process(DefineShippingMethod(**method), asynchronous=False)
            print(f"  shipping method {method['code']} added")

        if coupon_code:
            discount_type = DiscountType.PERCENTAGE.value if percent is not None else DiscountType.FIXED.value
            try:
                domain.process(
                    DefineCoupon(
                        code=coupon_code,
                        discount_type=discount_type,
                        discount_value=percent if percent is not None else fixed,
                        minimum_subtotal=minimum,
                    ),
                    asynchronous=False,
                )
                print(f"  coupon {coupon_code.upper()} added")
            except ValidationError as exc:
                print(f"  coupon {coupon_code.upper()} skipped: {exc.messages}")

    print("Done.")


def main():
    parser = argparse.ArgumentParser(description="Storefront checkout management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    seed_parser = subparsers.add_parser("seed", help="Seed shipping methods and an optional coupon")
    seed_parser.add_argument("--coupon", help="Coupon code to create")
    discount = seed_parser.add_mutually_exclusive_group()
    discount.add_argument("--fixed", type=int, help="Fixed discount in minor units")
    discount.add_argument("--percent", type=int, help="Percentage discount (0-100)")
    seed_parser.add_argument("--minimum", type=int, default=0, help="Minimum subtotal in minor units")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "seed":
        if args.coupon and args.fixed is None and args.percent is None:
            parser.error("--coupon needs --fixed or --percent")
        seed(args.coupon, fixed=args.fixed, percent=args.percent, minimum=args.minimum)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()

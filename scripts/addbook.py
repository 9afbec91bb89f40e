#!/usr/bin/env python3
"""
Script to add a title to the Stacks catalog.
"""
import argparse
import sys
from dotenv import load_dotenv

load_dotenv()

from stacks.core.catalog import Catalog
from stacks.core.db import init as db_init
from stacks.core.exceptions import StacksAPIError


def main():
    parser = argparse.ArgumentParser(description="Add a book to the Stacks catalog")
    parser.add_argument("--title", required=True)
    parser.add_argument("--author", required=True)
    parser.add_argument("--isbn", required=True)
    parser.add_argument("--copies", type=int, default=1, help="Number of physical copies")
    parser.add_argument("--category")
    parser.add_argument("--year", type=int, help="Year of publication")
    parser.add_argument("--location", help="Shelf location")
    args = parser.parse_args()

    try:
        db_init()
        book = Catalog.add_book(
            title=args.title,
            author=args.author,
            isbn=args.isbn,
            total_copies=args.copies,
            category=args.category,
            published_year=args.year,
            location=args.location,
        )
    except StacksAPIError as e:
        print(f"✗ Could not add book: {e}", file=sys.stderr)
        sys.exit(1)
    print(f"✓ Added book {book.id}: {book.title} ({book.total_copies} copies)")


if __name__ == "__main__":
    main()

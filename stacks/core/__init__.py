#!/usr/bin/env python

"""
    Core module for Stacks: storage, circulation rules and the
    borrowing engine

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

from stacks.core.db import Base, session, transaction, init as init_db
from stacks.core import models

__all__ = ["Base", "session", "transaction", "init_db", "models"]

#!/usr/bin/env python

"""
    Core module for STORA, ledger & db

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

from stora.core import db as database
from stora.core import models

session = database.init()

__all__ = ["database", "models", "session"]

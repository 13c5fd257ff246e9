#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
    stora
    ~~~~~

    STORA, the inventory and loan ledger for student organizations.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details.
"""

__version__ = '0.1.0'

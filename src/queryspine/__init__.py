"""
query-spine - OData filter translation, paginated query formatting and
safe execution over relational databases.

The implementation lives in :mod:`queryspine.core`; the common names are
re-exported here.
"""

__version__ = "0.1.0"

from queryspine.core import *  # noqa

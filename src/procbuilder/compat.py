import sys
from types import NoneType, UnionType

if sys.version_info < (3, 11):
    import tomli as tomllib

    # Popen(process_group=...) is new in 3.11
    POPEN_PROCESS_GROUP = False
else:
    import tomllib

    POPEN_PROCESS_GROUP = True

__all__ = [
    "POPEN_PROCESS_GROUP",
    "NoneType",
    "UnionType",
    "tomllib",
]

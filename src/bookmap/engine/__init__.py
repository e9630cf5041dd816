from . import errors
from . import types
from . import fields
from . import values
from . import paths
from . import formula
from . import resolver
from . import records
from . import suggest
from . import validate
from . import config
from . import batch
from . import loader
from . import emit
from . import store

__all__ = [
    "errors",
    "types",
    "fields",
    "values",
    "paths",
    "formula",
    "resolver",
    "records",
    "suggest",
    "validate",
    "config",
    "batch",
    "loader",
    "emit",
    "store",
]

"""Uniform key-value access over Redis, SQL tables, WebDAV, Dropbox, S3 and local disk.

Build an operator from a scheme name and a flat string configuration:

    from unistore import new_operator

    with new_operator("kv-plain", {"endpoint": "tcp://127.0.0.1:6379"}) as op:
        op.write("greeting", b"hello")

Named profiles live in ``configs/operators.py`` and are resolved by
``OperatorRegistry``.
"""

from unistore.core.storage import (
    ConfigMap,
    Operator,
    OperatorRegistry,
    Scheme,
    new_operator,
)

__all__ = ["ConfigMap", "Operator", "OperatorRegistry", "Scheme", "new_operator"]
__version__ = "0.1.0"

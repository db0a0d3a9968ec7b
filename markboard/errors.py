from __future__ import annotations


class MarkboardError(Exception):
    kind = "error"


class ValidationError(MarkboardError, ValueError):
    kind = "validation"


class NotFoundError(MarkboardError, LookupError):
    kind = "not_found"


class ProtectedResourceError(MarkboardError):
    kind = "protected"


class TypeMismatchError(MarkboardError, TypeError):
    kind = "type_mismatch"


class StoreError(MarkboardError, RuntimeError):
    kind = "store"

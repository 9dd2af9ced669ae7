"""Core package - annotation stores, layer registry, and page views."""

__all__ = [
    "Result",
    "Success",
    "Failure",
    "ValidationError",
    "MalformedImportError",
    "BoxStore",
    "ConnectionStore",
    "GroupStore",
    "LayerRegistry",
    "PageData",
    "PageDataAssembler",
    "AnnotationWorkspace",
]

# Lazy imports to avoid circular dependencies
def __getattr__(name):
    if name in ("Result", "Success", "Failure", "ValidationError", "MalformedImportError"):
        from core.error_types import Result, Success, Failure, ValidationError, MalformedImportError
        return locals()[name]
    elif name == "BoxStore":
        from core.box_store import BoxStore
        return BoxStore
    elif name == "ConnectionStore":
        from core.connection_store import ConnectionStore
        return ConnectionStore
    elif name == "GroupStore":
        from core.group_store import GroupStore
        return GroupStore
    elif name == "LayerRegistry":
        from core.layer_registry import LayerRegistry
        return LayerRegistry
    elif name in ("PageData", "PageDataAssembler"):
        from core.page_data import PageData, PageDataAssembler
        return locals()[name]
    elif name == "AnnotationWorkspace":
        from core.workspace import AnnotationWorkspace
        return AnnotationWorkspace
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

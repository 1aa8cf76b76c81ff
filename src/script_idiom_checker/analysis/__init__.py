"""Static analysis context shared by the pattern rules."""

from script_idiom_checker.analysis.context import (
    AnalysisContext,
    ControlKind,
    ObjectKind,
    SocketEvent,
    ValueShape,
)

__all__ = ["AnalysisContext", "ControlKind", "ObjectKind", "SocketEvent", "ValueShape"]

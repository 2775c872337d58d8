"""Typed model entry point."""

from ..values import Boolean, Bytes, Float, Integer, Json, Nullable, Text, Timestamp, Uuid
from .model import Model
from .schema import ColumnDeclaration, ModelDeclaration, ModelSchema, normalize_model_schema

__all__ = [
    "Model",
    "ModelDeclaration",
    "ColumnDeclaration",
    "ModelSchema",
    "normalize_model_schema",
    "Boolean",
    "Bytes",
    "Float",
    "Integer",
    "Json",
    "Nullable",
    "Text",
    "Timestamp",
    "Uuid",
]

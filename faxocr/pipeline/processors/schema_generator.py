"""Derive extraction schema, instruction text and display columns from a template.

Every recursive walk dispatches on ``FieldDefinition.shape``:

* ``primitive``        -> scalar schema / one column
* ``primitive_array``  -> array of numbers / one column
* ``object_array``     -> array of objects built from ``item_fields`` / one nested column
* ``object``           -> object built from ``properties`` / one column per property
"""

import logging
import re
from typing import Any

from faxocr.pipeline.core.config import BOUNDING_BOX_FIELD
from faxocr.pipeline.models.template import (
    ColumnDefinition,
    FieldDefinition,
    FieldShape,
    FieldType,
    Template,
)

logger = logging.getLogger(__name__)

_SCALAR_TYPES = {
    FieldType.STRING: "STRING",
    FieldType.NUMBER: "NUMBER",
    FieldType.BOOLEAN: "BOOLEAN",
}


def _object_schema(fields: list[FieldDefinition]) -> dict[str, Any]:
    return {
        "type": "OBJECT",
        "properties": {f.name: field_to_schema(f) for f in fields},
        "required": [f.name for f in fields if f.required],
    }


def field_to_schema(field: FieldDefinition) -> dict[str, Any]:
    """Schema property for one field node."""
    base = {"description": field.description}
    shape = field.shape

    if shape == FieldShape.OBJECT_ARRAY:
        return {**base, "type": "ARRAY", "items": _object_schema(field.children)}
    if shape == FieldShape.PRIMITIVE_ARRAY:
        return {**base, "type": "ARRAY", "items": {"type": "NUMBER"}}
    if shape == FieldShape.OBJECT:
        if not field.children:
            return {**base, "type": "OBJECT"}
        return {**base, **_object_schema(field.children)}
    return {**base, "type": _SCALAR_TYPES.get(field.type, "STRING")}


def generate_schema(template: Template) -> dict[str, Any]:
    """Structured-output schema: ``{items: [ {<template fields>} ]}``."""
    return {
        "type": "OBJECT",
        "properties": {
            "items": {
                "type": "ARRAY",
                "items": _object_schema(template.fields),
            }
        },
    }


def _fmt_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _describe_field(field: FieldDefinition) -> str:
    lines = [f"- **{field.label} ({field.name})**:", f"  - {field.description}"]
    if field.required:
        lines.append("  - 必須フィールド")
    rules = field.validation
    if rules is not None:
        if rules.min is not None:
            lines.append(f"  - 最小値: {_fmt_number(rules.min)}")
        if rules.max is not None:
            lines.append(f"  - 最大値: {_fmt_number(rules.max)}")
        if rules.pattern:
            lines.append(f"  - パターン: {rules.pattern}")
    return "\n".join(lines)


def generate_system_prompt(template: Template) -> str:
    """Instruction text for a template.

    A custom ``system_prompt`` wins; otherwise every field's label, name,
    instruction, required flag and min/max/pattern rules are listed.
    """
    if template.system_prompt:
        return template.system_prompt

    field_descriptions = "\n\n".join(_describe_field(f) for f in template.fields)

    return f"""あなたは文書からデータを抽出する専門AIです。
添付された画像を読み取り、以下の[フィールド定義]に従ってデータを構造化し、JSONのみを出力してください。

## テンプレート
{template.name}: {template.description}

## フィールド定義

{field_descriptions}

## 出力形式
- JSONスキーマに厳密に従ってください。
- Markdownコードブロックは不要です。
- フィールドが見つからない場合は、空文字列または null を使用してください。
- 数値は必ず数値型で出力してください（文字列ではなく）。
"""


def generate_column_definitions(template: Template) -> list[ColumnDefinition]:
    """Flat display columns.

    Object arrays become one nested column, objects with properties are
    flattened to ``field.prop`` columns, and everything else maps to one
    column. Only the bounding-box field is read-only.
    """
    columns: list[ColumnDefinition] = []
    for field in template.fields:
        shape = field.shape
        if shape == FieldShape.OBJECT_ARRAY:
            columns.append(
                ColumnDefinition(
                    key=field.name,
                    label=field.label,
                    type=FieldType.ARRAY,
                    editable=True,
                    nested=True,
                )
            )
        elif shape == FieldShape.OBJECT and field.children:
            for prop in field.children:
                columns.append(
                    ColumnDefinition(
                        key=f"{field.name}.{prop.name}",
                        label=f"{field.label} - {prop.label}",
                        type=prop.type,
                        editable=True,
                        nested=True,
                    )
                )
        else:
            columns.append(
                ColumnDefinition(
                    key=field.name,
                    label=field.label,
                    type=field.type,
                    editable=field.name != BOUNDING_BOX_FIELD,
                    nested=False,
                )
            )
    return columns


def _actual_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return "string"


def validate_data(data: dict[str, Any], template: Template) -> tuple[bool, list[str]]:
    """Check one dynamic row against its template's top-level fields.

    Returns:
        (is_valid, errors) with one localized message per violation
    """
    errors: list[str] = []

    for field in template.fields:
        value = data.get(field.name)

        if field.required and (value is None or value == ""):
            errors.append(f"{field.label} は必須です")
            continue

        if value is None:
            continue

        actual = _actual_type(value)
        if field.type == FieldType.NUMBER and actual != "number":
            errors.append(f"{field.label} は数値である必要があります")
        elif field.type == FieldType.BOOLEAN and actual != "boolean":
            errors.append(f"{field.label} はブール値である必要があります")
        elif field.type == FieldType.ARRAY and actual != "array":
            errors.append(f"{field.label} は配列である必要があります")
        elif field.type == FieldType.OBJECT and actual != "object":
            errors.append(f"{field.label} はオブジェクトである必要があります")

        rules = field.validation
        if rules is None:
            continue
        if field.type == FieldType.NUMBER and actual == "number":
            if rules.min is not None and value < rules.min:
                errors.append(f"{field.label} は {_fmt_number(rules.min)} 以上である必要があります")
            if rules.max is not None and value > rules.max:
                errors.append(f"{field.label} は {_fmt_number(rules.max)} 以下である必要があります")
        if field.type == FieldType.STRING and rules.pattern:
            try:
                matched = re.search(rules.pattern, str(value)) is not None
            except re.error:
                logger.warning(
                    "Invalid validation pattern %r on field %s", rules.pattern, field.name
                )
                matched = False
            if not matched:
                errors.append(f"{field.label} の形式が正しくありません")

    return not errors, errors

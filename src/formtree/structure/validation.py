"""
Model checks against a bound entity type.

When a form is declared with a pydantic ``entity_type``, every field path,
list path and dependency source must resolve through the entity's nested
models. Annotations are walked with ``get_origin``/``get_args`` so
``Optional[Address]``, ``list[Item]`` and ``Annotated`` fields are followed.
``Any`` and mapping-typed fields end the check: anything below them is
accepted.
"""

from collections.abc import Sequence
from types import NoneType, UnionType
from typing import Annotated, Any, Union, get_args, get_origin

from pydantic import BaseModel

from formtree.config import get_settings
from formtree.core.path_utils import parse_path
from formtree.exceptions import ErrorContext, PathValidationError
from formtree.structure.model import FormModel

_OPEN = object()  # below this point any path is accepted


def _unwrap(annotation: Any) -> Any:
    """Strip Annotated and Optional wrappers."""
    while True:
        origin = get_origin(annotation)
        if origin is Annotated:
            annotation = get_args(annotation)[0]
        elif origin in (Union, UnionType):
            args = [arg for arg in get_args(annotation) if arg is not NoneType]
            if len(args) != 1:
                return annotation
            annotation = args[0]
        else:
            return annotation


def _is_open(annotation: Any) -> bool:
    if annotation is Any or annotation is _OPEN:
        return True
    origin = get_origin(annotation)
    return annotation is dict or origin is dict


def _element_type(annotation: Any) -> Any | None:
    """Element type of a list-like annotation, None when not list-like."""
    annotation = _unwrap(annotation)
    if _is_open(annotation):
        return _OPEN
    origin = get_origin(annotation)
    if annotation in (list, tuple):
        return _OPEN
    if origin in (list, tuple) or (isinstance(origin, type) and issubclass(origin, Sequence)):
        args = get_args(annotation)
        return args[0] if args else _OPEN
    return None


def resolve_annotation(entity_type: type, path: str) -> Any:
    """
    Follow ``path`` through the annotations of ``entity_type``.

    Params:
        entity_type: Root pydantic model class
        path: Field path, e.g. "addresses[0].street"

    Returns:
        The annotation of the addressed field (unwrapped), or an opaque
        marker when the path runs below an ``Any``/mapping field

    Raises:
        ValueError: If a segment does not exist or traverses a non-model type
    """
    current: Any = entity_type
    walked: list[str] = []
    for segment in parse_path(path):
        current = _unwrap(current)
        if _is_open(current):
            return _OPEN
        if isinstance(segment, int):
            element = _element_type(current)
            if element is None:
                raise ValueError(f"'{'.'.join(walked)}' is not a list")
            current = element
            continue
        if not (isinstance(current, type) and issubclass(current, BaseModel)):
            location = ".".join(walked) or entity_type.__name__
            raise ValueError(f"'{location}' is not a nested model, cannot access '{segment}'")
        field_info = current.model_fields.get(segment)
        if field_info is None:
            raise ValueError(f"{current.__name__} has no field '{segment}'")
        walked.append(segment)
        current = field_info.annotation
    return _unwrap(current)


def _check(model: FormModel, root: Any, path: str, node_path: str, call: str) -> Any:
    try:
        if root is _OPEN:
            return _OPEN
        return resolve_annotation(root, path)
    except ValueError as e:
        raise PathValidationError(
            node_path,
            f"does not resolve on {getattr(model.entity_type, '__name__', model.entity_type)}: {e}",
            ErrorContext(form_id=model.form_id, node_path=node_path, builder_call=call),
            get_settings().error_level,
        ) from e


def validate_entity_paths(model: FormModel) -> None:
    """
    Check every path of ``model`` against ``model.entity_type``.

    Raises:
        PathValidationError: On the first path that does not resolve
    """
    entity_type = model.entity_type
    if entity_type is None:
        return

    for node, _ in model.iter_fields():
        _check(model, entity_type, node.path, node.path, "add_field")
        for binding in node.dependencies:
            _check(model, entity_type, binding.source, binding.source, "depends_on")

    for list_node, _ in model.iter_lists():
        annotation = _check(model, entity_type, list_node.path, list_node.path, "add_list")
        item_type = _element_type(annotation) if annotation is not _OPEN else _OPEN
        if item_type is None:
            raise PathValidationError(
                list_node.path,
                "is not a list field",
                ErrorContext(form_id=model.form_id, node_path=list_node.path, builder_call="add_list"),
                get_settings().error_level,
            )
        for node, _ in list_node.item_fields():
            absolute = f"{list_node.path}[].{node.path}"
            _check(model, item_type, node.path, absolute, "add_field")
            for binding in node.dependencies:
                _check(model, item_type, binding.source, f"{list_node.path}[].{binding.source}", "depends_on")

"""Hydra ConfigStore registration utilities."""

from __future__ import annotations

from typing import Any

from hydra.core.config_store import ConfigStore
from loguru import logger
from pydantic import BaseModel
from pydantic_core import PydanticUndefined


def _pydantic_defaults(target_cls: type[Any]) -> dict[str, Any]:
    """Field defaults of a pydantic model, skipping required fields."""
    if not (isinstance(target_cls, type) and issubclass(target_cls, BaseModel)):
        return {}
    defaults: dict[str, Any] = {}
    for field_name, field in target_cls.model_fields.items():
        if field.default is not PydanticUndefined:
            defaults[field_name] = field.default
    return defaults


def register(
    cls: type[Any] | None = None,
    *,
    group: str,
    name: str | None = None,
    **kwargs: Any,
) -> type[Any] | Any:
    """Decorator to register a config class with Hydra's ConfigStore.

    The stored node carries a ``_target_`` pointing at the decorated class,
    so ``hydra.utils.instantiate(cfg.<group>)`` rebuilds it. For pydantic
    models the field defaults are copied into the node, which lets YAML
    overrides name only the fields they change (``architecture.num_classes=3``).

    Arguments:
        cls: The class to register.
        group: The ConfigStore group, e.g. ``"architecture"``.
        name: The name for the config. Defaults to class name.
        **kwargs: Values overriding the class defaults in the stored node.
    """

    def _process_class(target_cls: type[Any]) -> type[Any]:
        config_name = name or target_cls.__name__
        node: dict[str, Any] = {"_target_": f"{target_cls.__module__}.{target_cls.__name__}"}
        node.update(_pydantic_defaults(target_cls))
        node.update(kwargs)

        logger.debug(
            f"Registering {target_cls.__name__} as '{config_name}' in group '{group}'"
        )
        ConfigStore.instance().store(group=group, name=config_name, node=node)
        return target_cls

    if cls is None:
        return _process_class
    return _process_class(cls)

"""Detector registry discovering detector modules in this package."""

from __future__ import annotations

import importlib
import inspect
import pkgutil
from collections.abc import Callable
from functools import lru_cache
from pathlib import Path
from types import ModuleType

from chainwatch.config import Settings
from chainwatch.detectors.base import Detector

DetectorFactory = Callable[[Settings], Detector]
_SKIPPED_MODULES = {
    "__init__",
    "base",
    "registry",
}
_DETECTORS_PACKAGE_NAME = "chainwatch.detectors"


def _detectors_directory() -> Path:
    return Path(__file__).resolve().parent


def _iter_detector_module_names() -> list[str]:
    names: list[str] = []
    for module in pkgutil.iter_modules([str(_detectors_directory())]):
        name = module.name
        if name.startswith("_") or name in _SKIPPED_MODULES:
            continue
        names.append(name)
    return sorted(names)


def _normalize_detector_id(value: str) -> str:
    return value.strip().lower().replace("-", "_")


def _params_for(module: ModuleType, detector_id: str, settings: Settings) -> object | None:
    from_settings = getattr(module, "params_from_settings", None)
    if callable(from_settings):
        return from_settings(settings)
    canonical_name = f"default_{_normalize_detector_id(detector_id)}_params"
    candidate = getattr(module, canonical_name, None)
    if callable(candidate):
        return candidate()
    return None


def _build_detector(
    detector_type: type[Detector],
    module: ModuleType,
    settings: Settings,
) -> Detector:
    signature = inspect.signature(detector_type)
    kwargs: dict[str, object] = {}

    for parameter in signature.parameters.values():
        if parameter.kind in {inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD}:
            continue
        if parameter.name == "settings":
            kwargs["settings"] = settings
            continue
        if parameter.name == "params":
            params_object = _params_for(module, detector_type.detector_id, settings)
            if params_object is None:
                if parameter.default is not inspect.Signature.empty:
                    continue
                raise ValueError(
                    f"Detector '{detector_type.detector_id}' requires params but no "
                    "params_from_settings() or default_*_params() function was found."
                )
            kwargs["params"] = params_object
            continue
        if parameter.default is inspect.Signature.empty:
            raise ValueError(
                f"Detector '{detector_type.detector_id}' has unsupported required "
                f"constructor parameter '{parameter.name}'."
            )

    return detector_type(**kwargs)


def _detector_types_in_module(module: ModuleType) -> list[type[Detector]]:
    discovered: list[type[Detector]] = []
    for _, candidate in inspect.getmembers(module, inspect.isclass):
        if candidate is Detector or not issubclass(candidate, Detector):
            continue
        if candidate.__module__ != module.__name__ or inspect.isabstract(candidate):
            continue
        detector_id = getattr(candidate, "detector_id", None)
        if not isinstance(detector_id, str) or not detector_id.strip():
            continue
        discovered.append(candidate)
    return discovered


@lru_cache(maxsize=1)
def _discover_registry() -> tuple[dict[str, DetectorFactory], dict[str, str]]:
    registry: dict[str, DetectorFactory] = {}
    load_errors: dict[str, str] = {}

    for module_name in _iter_detector_module_names():
        try:
            module = importlib.import_module(f"{_DETECTORS_PACKAGE_NAME}.{module_name}")
        except ImportError as exc:
            load_errors[module_name] = f"{type(exc).__name__}: {exc}"
            continue

        for detector_type in _detector_types_in_module(module):
            detector_id = _normalize_detector_id(detector_type.detector_id)
            if detector_id in registry:
                raise ValueError(f"Duplicate detector id discovered: '{detector_id}'")

            def factory(
                settings: Settings,
                detector_cls: type[Detector] = detector_type,
                detector_module: ModuleType = module,
            ) -> Detector:
                return _build_detector(detector_cls, detector_module, settings)

            registry[detector_id] = factory

    return registry, load_errors


def available_detector_ids() -> list[str]:
    """Return supported detector ids."""
    registry, _ = _discover_registry()
    return sorted(registry.keys())


def create_detector(detector_id: str, settings: Settings) -> Detector:
    """Instantiate one detector with thresholds taken from settings."""
    registry, load_errors = _discover_registry()
    normalized = _normalize_detector_id(detector_id)
    factory = registry.get(normalized)
    if factory is None:
        supported = ", ".join(available_detector_ids())
        load_error = load_errors.get(normalized)
        if load_error is not None:
            raise ValueError(f"Detector '{detector_id}' could not be loaded: {load_error}")
        raise ValueError(f"Unknown detector '{detector_id}'. Supported: {supported}")
    return factory(settings)


def create_detectors(settings: Settings, detector_ids: list[str] | None = None) -> list[Detector]:
    """Instantiate the full registry, or the requested subset, in id order."""
    ids = detector_ids if detector_ids is not None else available_detector_ids()
    return [create_detector(detector_id, settings) for detector_id in ids]

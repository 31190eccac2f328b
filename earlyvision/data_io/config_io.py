"""
Read the YAML parameter files into a Configuration object with nested dict-like
and attribute-like access.

Notes
-----
    Top-level keys must be unique across files. A duplicate raises ValueError
    naming both files.

Examples
--------
    >>> config = load_yaml(["retina_parameters.yaml", "run_parameters.yaml"])
    >>> config.cone_mosaic.rows
    >>> config["simulation_parameters"]["cell_types"]
"""

# Built-in
import copy
from collections.abc import MutableMapping
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping

# Third-party
from yaml import YAMLError, safe_load


def _read_yaml_files(yaml_paths: Iterable[Path]) -> dict[str, Any]:
    """
    Merge the top-level mappings of the YAML files.

    Raises
    ------
    FileNotFoundError
        If a file does not exist.
    ValueError
        If a file is empty, is not a mapping, is invalid YAML or repeats a
        top-level key of an earlier file.
    """
    combined: dict[str, Any] = {}
    key_sources: dict[str, Path] = {}

    for path in yaml_paths:
        if not path.exists():
            raise FileNotFoundError(f"YAML file not found: {path!s}")

        with open(path, "r", encoding="utf-8") as file:
            try:
                contents = safe_load(file)
            except YAMLError as e:
                raise ValueError(f"Invalid YAML in configuration file {path}: {e}") from e

        if contents is None:
            raise ValueError(f"Configuration file is empty: {path!s}")
        if not isinstance(contents, dict):
            raise ValueError(f"Top-level of YAML must be a mapping in {path!s}")

        for key in contents:
            if key in combined:
                raise ValueError(
                    f"Duplicate top-level key '{key}' found in {path!s}; "
                    f"first defined in {key_sources[key]!s}."
                )
            key_sources[key] = path
        combined.update(contents)

    return combined


class Configuration(MutableMapping):
    """
    Mutable parameter mapping.

    Nested dicts become Configuration objects. Keys starting with "_" are
    reserved and cannot be set as attributes.
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        super().__setattr__("_data", {})
        if initial:
            for key, value in dict(initial).items():
                self[key] = value

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._data[key] = Configuration(value) if isinstance(value, dict) else value

    def __delitem__(self, key: str) -> None:
        del self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __getattr__(self, name: str) -> Any:
        try:
            return self._data[name]
        except KeyError as e:
            raise AttributeError(f"No attribute '{name}' found.") from e

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_") or name in type(self).__dict__:
            raise AttributeError(
                f"Cannot set attribute '{name}' because it conflicts with a built-in member."
            )
        self[name] = value

    def __delattr__(self, name: str) -> None:
        try:
            del self._data[name]
        except KeyError as e:
            raise AttributeError(f"No attribute '{name}' found.") from e

    def __dir__(self) -> list[str]:
        return list(super().__dir__()) + list(self._data.keys())

    def __repr__(self) -> str:
        return f"Configuration({self._data!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Configuration):
            return self.to_dict() == other.to_dict()
        if isinstance(other, dict):
            return self.to_dict() == other
        return False

    # Mutable, so not hashable
    __hash__ = None

    def __copy__(self):
        return type(self)(self.to_dict())

    def __deepcopy__(self, memo):
        return type(self)(copy.deepcopy(self.to_dict(), memo))

    def __getstate__(self):
        return self.to_dict()

    def __setstate__(self, state):
        super().__setattr__("_data", {})
        for key, value in dict(state).items():
            self[key] = value

    def to_dict(self) -> dict[str, Any]:
        """Plain nested dict copy of the configuration."""
        return {
            key: value.to_dict() if isinstance(value, Configuration) else value
            for key, value in self._data.items()
        }

    @classmethod
    def from_yaml(cls, *paths: Path | str) -> "Configuration":
        return cls(_read_yaml_files([Path(p) for p in paths]))


def load_yaml(paths: Iterable[Path | str] | Path | str) -> Configuration:
    """
    Load configuration from one or more YAML files.

    Parameters
    ----------
    paths : Iterable[Path | str] | Path | str
        YAML file(s) to load and merge.

    Returns
    -------
    Configuration
    """
    if isinstance(paths, (str, Path)):
        paths = [paths]
    return Configuration.from_yaml(*paths)

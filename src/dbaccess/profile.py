"""
Record type profiles.

A TypeProfile lists the members a record type exposes to result mapping:
annotated fields (dataclass fields included) and setters (writable
properties and `set_<name>(self, value)` methods), each reachable by its
own name or by an alias hint. Profiles are built once per type and cached
for the life of the process.
"""
import dataclasses
import inspect
import logging
import re
import threading
import types
import typing
from collections.abc import Callable
from typing import Annotated, Any, ClassVar

from dbaccess.exceptions import TypeConversionError
from dbaccess.hints import hints_from_function, hints_from_metadata
from dbaccess.types import strip_annotated, zero_value

logger = logging.getLogger(__name__)

_SETTER_METHOD = re.compile(r'^set_(?P<name>\w+)$')

_POSITIONAL = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)


@dataclasses.dataclass(frozen=True, slots=True)
class MemberInfo:
    """A record member that columns can be mapped onto."""
    name: str
    type: Any = Any
    alias: str | None = None
    setter: Callable[[Any, Any], None] | None = None

    def assign(self, instance: Any, value: Any) -> None:
        """Store an already converted value on `instance`."""
        if self.setter is not None:
            self.setter(instance, value)
        else:
            object.__setattr__(instance, self.name, value)


def _resolve_hints(obj: Any) -> dict[str, Any]:
    """Resolve type hints, treating unresolvable forward references as Any."""
    try:
        return typing.get_type_hints(obj, include_extras=True)
    except NameError:
        logger.debug(f'Unresolvable annotations on {obj!r}, falling back to Any')
        raw = {}
        for klass in reversed(getattr(obj, '__mro__', (obj,))):
            raw.update(getattr(klass, '__annotations__', {}))
        return {k: (Any if isinstance(v, str) else v) for k, v in raw.items()}


def _is_class_var(hint: Any) -> bool:
    return hint is ClassVar or typing.get_origin(hint) is ClassVar


def _annotated_hints(hint: Any) -> tuple[str | None, bool]:
    if typing.get_origin(hint) is Annotated:
        return hints_from_metadata(hint.__metadata__)
    return None, False


class TypeProfile:
    """Member metadata for one record type.

    Lookup order for an incoming column name is field alias, field name,
    setter alias, setter name. Names are matched case-sensitively.
    """

    def __init__(self, cls: type) -> None:
        self.cls = cls
        self.fields_by_name: dict[str, MemberInfo] = {}
        self.fields_by_alias: dict[str, MemberInfo] = {}
        self.setters_by_name: dict[str, MemberInfo] = {}
        self.setters_by_alias: dict[str, MemberInfo] = {}
        self._required: dict[str, Any] = {}
        self._collect_fields()
        self._collect_setters()

    def __repr__(self) -> str:
        return (f'TypeProfile({self.cls.__name__}, fields={list(self.fields_by_name)}, '
                f'setters={list(self.setters_by_name)})')

    def _collect_fields(self) -> None:
        hints = _resolve_hints(self.cls)
        dc_fields = {}
        if dataclasses.is_dataclass(self.cls):
            dc_fields = {f.name: f for f in dataclasses.fields(self.cls)}

        for name, hint in hints.items():
            if name.startswith('_') or _is_class_var(hint):
                continue
            if isinstance(hint, dataclasses.InitVar):
                continue
            if isinstance(inspect.getattr_static(self.cls, name, None),
                          (property, types.FunctionType)):
                continue
            alias, ignored = _annotated_hints(hint)
            dc_field = dc_fields.get(name)
            if dc_field is not None:
                meta_alias, meta_ignored = hints_from_metadata(dc_field.metadata)
                alias = meta_alias or alias
                ignored = ignored or meta_ignored
                if (dc_field.init and dc_field.default is dataclasses.MISSING
                        and dc_field.default_factory is dataclasses.MISSING):
                    self._required[name] = hint
            if ignored:
                continue
            member = MemberInfo(name, strip_annotated(hint), alias)
            self.fields_by_name[name] = member
            if alias:
                self.fields_by_alias[alias] = member

    def _collect_setters(self) -> None:
        for attr_name in dir(self.cls):
            if attr_name.startswith('_'):
                continue
            attr = inspect.getattr_static(self.cls, attr_name)
            if isinstance(attr, property):
                member = self._property_member(attr_name, attr)
            elif isinstance(attr, types.FunctionType):
                member = self._method_member(attr_name, attr)
            else:
                member = None
            if member is None or member.name in self.setters_by_name:
                continue
            self.setters_by_name[member.name] = member
            if member.alias:
                self.setters_by_alias[member.alias] = member

    def _property_member(self, name: str, prop: property) -> MemberInfo | None:
        if prop.fset is None:
            return None
        alias, ignored = hints_from_function(prop.fset)
        get_alias, get_ignored = hints_from_function(prop.fget)
        if ignored or get_ignored:
            return None
        value_type = self._value_type(prop.fset)
        if value_type is Any and prop.fget is not None:
            value_type = _resolve_hints(prop.fget).get('return', Any)
        param_alias, _ = _annotated_hints(value_type)
        return MemberInfo(name, strip_annotated(value_type),
                          alias or get_alias or param_alias, prop.fset)

    def _method_member(self, name: str, func: types.FunctionType) -> MemberInfo | None:
        match = _SETTER_METHOD.match(name)
        if match is None:
            return None
        params = list(inspect.signature(func).parameters.values())
        if len(params) != 2 or params[1].kind not in _POSITIONAL:
            return None
        alias, ignored = hints_from_function(func)
        if ignored:
            return None
        value_type = self._value_type(func)
        param_alias, param_ignored = _annotated_hints(value_type)
        if param_ignored:
            return None
        return MemberInfo(match.group('name'), strip_annotated(value_type),
                          alias or param_alias, func)

    @staticmethod
    def _value_type(func: Callable) -> Any:
        """Annotation of a setter's value parameter, or Any."""
        params = list(inspect.signature(func).parameters.values())
        if len(params) < 2:
            return Any
        return _resolve_hints(func).get(params[1].name, Any)

    def find_member(self, name: str) -> MemberInfo | None:
        """Resolve a column name to a member, or None if nothing matches."""
        return (self.fields_by_alias.get(name)
                or self.fields_by_name.get(name)
                or self.setters_by_alias.get(name)
                or self.setters_by_name.get(name))

    def new_instance(self) -> Any:
        """Create an empty record.

        Dataclasses with required fields get the zero value of each
        required field's type; members are assigned afterwards.
        """
        kwargs = {name: zero_value(hint) for name, hint in self._required.items()}
        try:
            return self.cls(**kwargs)
        except TypeError as err:
            raise TypeConversionError(
                'record', type(None), self.cls,
                message=f'{self.cls.__name__} cannot be created without arguments: {err}') from err


class ProfileCache:
    """Process-wide cache of TypeProfile objects.

    Thread-safe singleton; at most one profile is ever published per type.
    """

    _instance = None
    _profiles: dict[type, TypeProfile] = {}
    _lock = threading.RLock()

    @classmethod
    def get_instance(cls) -> 'ProfileCache':
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def get(self, record_type: type) -> TypeProfile:
        """Get the profile for a type, building it on first request."""
        profile = self._profiles.get(record_type)
        if profile is None:
            with self._lock:
                profile = self._profiles.get(record_type)
                if profile is None:
                    profile = TypeProfile(record_type)
                    self._profiles[record_type] = profile
                    logger.debug(f'Created profile for {record_type.__name__}')
        return profile

    def clear(self) -> None:
        """Forget all profiles."""
        with self._lock:
            self._profiles.clear()

    def __len__(self) -> int:
        return len(self._profiles)


def get_profile(record_type: type) -> TypeProfile:
    """Get the cached profile for a record type."""
    return ProfileCache.get_instance().get(record_type)

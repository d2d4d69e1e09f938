import functools
from dataclasses import dataclass, fields
from typing import Callable, Self, Sequence, TypeVar


class DecodeToDataclassException(Exception):
    pass


T = TypeVar('T')


@dataclass
class FromResponse:
    """
    Class for extending dataclass with custom from_response method, ignored extra fields
    """

    @classmethod
    def from_response(cls, **kwargs) -> Self:
        class_field_names = [field.name for field in fields(cls)]
        return cls(**{k: v for k, v in kwargs.items() if k in class_field_names})


def list_of_dataclasses(
    _dataclass_factory: Callable[..., T]
) -> Callable[[Callable[..., Sequence]], Callable[..., list[T]]]:
    """Decorator to transform list of dicts from func response to list of dataclasses"""
    def decorator(func: Callable[..., Sequence]) -> Callable[..., list[T]]:
        @functools.wraps(func)
        def wrapper_decorator(*args, **kwargs):
            list_of_elements = func(*args, **kwargs)

            if not list_of_elements:
                return []

            for element in list_of_elements:
                if not isinstance(element, dict):
                    raise DecodeToDataclassException(f'Type {type(element)} is not supported.')

            return list(map(lambda x: _dataclass_factory(**x), list_of_elements))
        return wrapper_decorator

    return decorator

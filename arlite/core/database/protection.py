"""
Mass-assignment policy.

Decides which incoming keys may be applied as attribute writes. The primary key
and the inheritance column are never mass-assignable; beyond that a type has
either an accessible (allow) list or a protected (deny) list, never both.
Lists accumulate down the inheritance chain.
"""
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from .errors import ConfigurationError, ProtectedAttributeError


def effective_list(inherited: Optional[Iterable[str]], own: Optional[Iterable[str]]) -> List[str]:
    """Ordered, deduplicated union: inherited entries first."""
    result: List[str] = []
    for name in list(inherited or []) + list(own or []):
        name = str(name)
        if name not in result:
            result.append(name)
    return result


def combine(inherited: Optional[List[str]], own: Optional[List[str]]) -> Optional[List[str]]:
    """Like effective_list, but None when nothing was ever declared."""
    if not inherited and not own:
        return None
    return effective_list(inherited, own)


def check_exclusive(model_name: str, protected: Optional[List[str]], accessible: Optional[List[str]]):
    if protected and accessible:
        raise ConfigurationError(
            f"{model_name} declares both protected {protected} and accessible {accessible} attributes"
        )


def base_attribute(key: str) -> str:
    """'written_on(4i)' -> 'written_on'."""
    return key.split("(", 1)[0] if "(" in key else key


class MassAssignmentPolicy:
    def __init__(self, protected: Optional[List[str]] = None, accessible: Optional[List[str]] = None,
                 always_protected: Optional[List[str]] = None, model_name: str = "Record"):
        check_exclusive(model_name, protected, accessible)
        self.protected = list(protected or [])
        self.accessible = list(accessible or [])
        self.always_protected = list(always_protected or [])
        self.model_name = model_name

    def is_permitted(self, key: str) -> bool:
        name = base_attribute(str(key))
        if name in self.always_protected:
            return False
        if self.accessible:
            return name in self.accessible
        return name not in self.protected

    def permit(self, pairs: Dict[Any, Any], strict: bool = False) -> Dict[str, Any]:
        permitted: Dict[str, Any] = {}
        dropped: List[str] = []
        for key, value in pairs.items():
            key = str(key)
            if self.is_permitted(key):
                permitted[key] = value
            else:
                dropped.append(key)

        if dropped:
            if strict:
                raise ProtectedAttributeError(self.model_name, dropped)
            logger.debug(f"{self.model_name}: dropped protected attributes {dropped}")
        return permitted

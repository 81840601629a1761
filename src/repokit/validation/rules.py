"""
Rule sets.

A repository's `rules()` may return either a plain mapping

    {"title": "required|string|max:120", "status": ["in:draft,published"]}

or a `BaseRules` subclass, which keeps rules and their custom messages together
and can be shared between repositories:

    class PostRules(BaseRules):
        def rules(self):
            return {"title": "required|string|max:120"}

        def messages(self):
            return {"title.required": "A post needs a title."}
"""
from collections.abc import Mapping
from typing import Any

from repokit.exceptions.base import RepositoryConfigurationError


class BaseRules:
    """Rules plus optional custom messages, retrieved through the class."""

    def rules(self) -> dict[str, Any]:
        raise NotImplementedError(f"{type(self).__name__} must implement rules()")

    def messages(self) -> dict[str, str]:
        return {}

    @classmethod
    def get_rules(cls) -> dict[str, Any]:
        return cls().rules()

    @classmethod
    def get_messages(cls) -> dict[str, str]:
        return cls().messages()


def resolve_rule_set(rule_set: Any) -> tuple[dict[str, Any], dict[str, str]]:
    """
    Normalize whatever `rules()` returned into (rules, messages).

    Resolved on every call: a `BaseRules` class is instantiated each time so rules
    that depend on runtime state are never stale.
    """
    if isinstance(rule_set, type) and issubclass(rule_set, BaseRules):
        return dict(rule_set.get_rules()), dict(rule_set.get_messages())
    if isinstance(rule_set, BaseRules):
        return dict(rule_set.rules()), dict(rule_set.messages())
    if isinstance(rule_set, Mapping):
        return dict(rule_set), {}
    if rule_set is None:
        return {}, {}
    raise RepositoryConfigurationError(
        f"rules() must return a mapping or a BaseRules subclass, got {type(rule_set).__name__}"
    )

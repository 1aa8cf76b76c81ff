"""Pattern rules, one per cataloged idiom.

The registry maps rule names to rule instances. Rules are stateless, so the
same instances are shared by every check.
"""

from script_idiom_checker.config.exceptions import ConfigError
from script_idiom_checker.rules.assume_refute import AssumeRefuteRule
from script_idiom_checker.rules.base import PatternRule
from script_idiom_checker.rules.redundant_boolean import RedundantBooleanRule
from script_idiom_checker.rules.socket_split import SocketSplitRule
from script_idiom_checker.rules.startup_invocation import StartupInvocationRule
from script_idiom_checker.rules.ternary import TernaryRule

DEFAULT_RULES: tuple[PatternRule, ...] = (
    RedundantBooleanRule(),
    TernaryRule(),
    StartupInvocationRule(),
    AssumeRefuteRule(),
    SocketSplitRule(),
)

RULES_BY_NAME: dict[str, PatternRule] = {rule.name: rule for rule in DEFAULT_RULES}


def get_rules(names: tuple[str, ...] | list[str] | None = None) -> tuple[PatternRule, ...]:
    """Look up rules by name.

    Args:
        names: Rule names to select, or None for every registered rule.

    Returns:
        tuple[PatternRule, ...]: The selected rules in registry order.

    Raises:
        ConfigError: If a name does not match a registered rule.
    """
    if names is None:
        return DEFAULT_RULES
    unknown = sorted(set(names) - RULES_BY_NAME.keys())
    if unknown:
        raise ConfigError(
            f"Unknown rule(s): {', '.join(unknown)}. "
            f"Available rules: {', '.join(sorted(RULES_BY_NAME))}"
        )
    return tuple(rule for rule in DEFAULT_RULES if rule.name in names)


__all__ = [
    "DEFAULT_RULES",
    "RULES_BY_NAME",
    "AssumeRefuteRule",
    "PatternRule",
    "RedundantBooleanRule",
    "SocketSplitRule",
    "StartupInvocationRule",
    "TernaryRule",
    "get_rules",
]

"""
Evaluation of Mojang library and argument rules.

A rule list starts out disallowed. Every rule whose conditions match the
current platform sets the outcome to its own action, so the last matching
rule wins.
"""
import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from .platform_info import CurrentPlatform, current_platform

log = logging.getLogger(__name__)

# Architecture spellings found in manifests, normalized to platform_info names.
_ARCH_ALIASES = {
    'x86': 'x86', 'i386': 'x86', 'i686': 'x86',
    'x64': 'x64', 'x86_64': 'x64', 'amd64': 'x64',
    'arm64': 'arm64', 'aarch64': 'arm64',
    'arm': 'arm32', 'arm32': 'arm32',
}


def _os_matches(os_rule: Mapping[str, Any], platform: CurrentPlatform) -> bool:
    name = os_rule.get('name')
    if name is not None and name != platform.os:
        return False

    arch = os_rule.get('arch')
    if arch is not None:
        # Advisory only: unknown spellings never exclude the host.
        wanted = _ARCH_ALIASES.get(str(arch).lower())
        if wanted is not None and wanted != platform.arch:
            return False

    version = os_rule.get('version')
    if version is not None and platform.version:
        try:
            if re.search(version, platform.version) is None:
                return False
        except re.error:
            log.warning(f"Ignoring invalid OS version pattern in rule: {version!r}")

    return True


def _features_match(features_rule: Mapping[str, Any], features: Optional[Mapping[str, bool]]) -> bool:
    if features is None:
        return True
    for key, expected in features_rule.items():
        if bool(features.get(key, False)) != bool(expected):
            return False
    return True


def rule_matches(rule: Mapping[str, Any], platform: CurrentPlatform,
                 features: Optional[Mapping[str, bool]] = None) -> bool:
    """Tells whether the conditions of a single rule hold on ``platform``."""
    os_rule = rule.get('os')
    if isinstance(os_rule, dict) and not _os_matches(os_rule, platform):
        return False
    features_rule = rule.get('features')
    if isinstance(features_rule, dict) and not _features_match(features_rule, features):
        return False
    return True


def applies(rules: List[Dict[str, Any]], platform: Optional[CurrentPlatform] = None,
            features: Optional[Mapping[str, bool]] = None) -> bool:
    """
    Evaluates a rule list, later matching rules overriding earlier ones.

    ``features`` maps feature flags (``is_demo_user``, ``has_custom_resolution``...)
    to their values; when omitted every feature condition is considered satisfied.
    """
    if platform is None:
        platform = current_platform()

    allowed = False
    for rule in rules:
        if rule_matches(rule, platform, features):
            action = rule.get('action', 'allow')
            if action not in ('allow', 'disallow'):
                log.warning(f"Unknown rule action: {action}. Treating as disallow.")
            allowed = action == 'allow'
    return allowed


def item_applies(item: Mapping[str, Any], platform: Optional[CurrentPlatform] = None,
                 features: Optional[Mapping[str, bool]] = None) -> bool:
    """Checks a library or argument entry; entries without ``rules`` always apply."""
    rules = item.get('rules')
    if rules is None:
        return True
    return applies(rules, platform, features)
